"""
ShutterBox Backend — Abstract Vision Service Interface
========================================================

What:  Contract for services that detect labels and landmarks in a photo.
How:   Concrete providers subclass VisionService and implement detect()
       and health_check(). GeminiVisionService is the only provider today;
       tests substitute mocks.
Who:   Image upload route, after the file is stored and before
       create_image.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from shutterbox.schemas.image import Label, Landmark


@dataclass
class VisionResult:
    labels: List[Label] = field(default_factory=list)
    landmarks: List[Landmark] = field(default_factory=list)


class VisionService(ABC):
    """
    Contract:
        - detect() never returns None; an image with nothing recognizable
          yields an empty VisionResult
        - provider errors are wrapped in VisionServiceError, or
          CircuitBreakerOpenError while the provider is being shed
    """

    @abstractmethod
    async def detect(self, image_path: str) -> VisionResult:
        """
        Detect labels and landmarks in a stored image.

        Args:
            image_path: Absolute path to a validated JPEG/PNG on disk.

        Raises:
            VisionServiceError: provider failed after all retries
            CircuitBreakerOpenError: too many recent failures
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...
