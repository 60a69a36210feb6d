"""
ShutterBox Backend — JSON Response Class
==========================================

What:  Default response class for every route. Encoding failures (e.g. a
       NaN score, which strict JSON cannot represent) become a
       SerializationError, answered with status 523.
"""

import logging
from typing import Any

from fastapi.responses import JSONResponse

from shutterbox.exceptions import SerializationError

logger = logging.getLogger(__name__)


class ShutterBoxJSONResponse(JSONResponse):

    def render(self, content: Any) -> bytes:
        try:
            return super().render(content)
        except (TypeError, ValueError) as e:
            logger.error("Failed to encode response body: %s", e)
            raise SerializationError(context={"error": str(e)}) from e
