"""
ShutterBox Backend — Local Image Analysis (EXIF and Dominant Colors)
======================================================================

What:  Derives the parts of the image aggregate that need no external
       service: camera metadata and GPS from EXIF, and the dominant color
       palette.
Who:   Image upload route, before create_image.
How:   Pillow only. EXIF is read through Image.getexif() and its Exif/GPS
       sub-IFDs; colors come from a median-cut quantization of a
       downscaled RGB copy.

CPU-bound; callers run analyze() in a worker thread.
"""

import colorsys
import io
import logging
import math
from datetime import datetime
from typing import Any, List, Optional, Tuple

from PIL import ExifTags, Image

from shutterbox.config import settings
from shutterbox.schemas.image import HSV, SRGB, Color, GeoPoint, ImageMetadata

logger = logging.getLogger(__name__)

# ── EXIF tag ids ──────────────────────────────────────────────────────────
_TAG_MAKE = 0x010F
_TAG_MODEL = 0x0110
_TAG_EXPOSURE_TIME = 0x829A
_TAG_F_NUMBER = 0x829D
_TAG_ISO = 0x8827
_TAG_DATETIME_ORIGINAL = 0x9003
_TAG_FOCAL_LENGTH = 0x920A
_TAG_PIXEL_X = 0xA002
_TAG_PIXEL_Y = 0xA003
_TAG_LENS_MAKE = 0xA433
_TAG_LENS_MODEL = 0xA434

_GPS_LAT_REF = 1
_GPS_LAT = 2
_GPS_LNG_REF = 3
_GPS_LNG = 4
_GPS_IMG_DIRECTION = 17

_ANALYSIS_SIZE = (200, 200)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    # A 0/0 EXIF rational reads as NaN
    return result if math.isfinite(result) else None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).strip().strip("\x00")
    return text or None


def format_exposure(seconds: Optional[float]) -> Optional[str]:
    """1/250 for fast shutters, plain seconds (e.g. 2 or 0.5s → "1/2") otherwise."""
    if seconds is None or seconds <= 0:
        return None
    if seconds < 1:
        return f"1/{round(1 / seconds)}"
    return f"{seconds:g}"


def _dms_to_degrees(dms: Any, ref: Any) -> Optional[float]:
    try:
        degrees, minutes, secs = (float(part) for part in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60 + secs / 3600
    if not math.isfinite(value):
        return None
    if _as_text(ref) in ("S", "W"):
        value = -value
    return value


def _capture_time(value: Any) -> Optional[datetime]:
    text = _as_text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text, "%Y:%m:%d %H:%M:%S")
    except ValueError:
        return None


def extract_metadata(img: Image.Image) -> ImageMetadata:
    """Camera settings, dimensions and GPS point. Missing tags stay None."""
    exif = img.getexif()
    detail = exif.get_ifd(ExifTags.IFD.Exif)
    gps = exif.get_ifd(ExifTags.IFD.GPSInfo)

    location = None
    if _GPS_LAT in gps and _GPS_LNG in gps:
        lat = _dms_to_degrees(gps[_GPS_LAT], gps.get(_GPS_LAT_REF))
        lng = _dms_to_degrees(gps[_GPS_LNG], gps.get(_GPS_LNG_REF))
        if lat is not None and lng is not None:
            location = GeoPoint(coordinates=[lng, lat])

    iso = detail.get(_TAG_ISO)
    if isinstance(iso, (tuple, list)):
        iso = iso[0] if iso else None

    return ImageMetadata(
        aperture=_as_float(detail.get(_TAG_F_NUMBER)),
        exposure_time=format_exposure(_as_float(detail.get(_TAG_EXPOSURE_TIME))),
        focal_length=_as_float(detail.get(_TAG_FOCAL_LENGTH)),
        iso=int(iso) if iso is not None else None,
        make=_as_text(exif.get(_TAG_MAKE)),
        model=_as_text(exif.get(_TAG_MODEL)),
        lens_make=_as_text(detail.get(_TAG_LENS_MAKE)),
        lens_model=_as_text(detail.get(_TAG_LENS_MODEL)),
        pixel_xd=int(detail.get(_TAG_PIXEL_X) or img.width),
        pixel_yd=int(detail.get(_TAG_PIXEL_Y) or img.height),
        capture_time=_capture_time(detail.get(_TAG_DATETIME_ORIGINAL)),
        location=location,
        image_direction=_as_float(gps.get(_GPS_IMG_DIRECTION)),
    )


# ── Colors ────────────────────────────────────────────────────────────────

# Upper hue bound (degrees) → name
_HUE_NAMES = [
    (15, "red"),
    (45, "orange"),
    (70, "yellow"),
    (160, "green"),
    (200, "cyan"),
    (260, "blue"),
    (300, "purple"),
    (340, "pink"),
    (360, "red"),
]


def color_name(hsv: HSV) -> str:
    if hsv.v < 0.15:
        return "black"
    if hsv.s < 0.12:
        return "white" if hsv.v > 0.85 else "gray"
    for bound, name in _HUE_NAMES:
        if hsv.h < bound:
            return name
    return "red"


def shade(hsv: HSV) -> str:
    if hsv.v < 0.35:
        return "dark"
    if hsv.v > 0.75 and hsv.s < 0.4:
        return "light"
    return "medium"


def to_hsv(srgb: SRGB) -> HSV:
    h, s, v = colorsys.rgb_to_hsv(srgb.r / 255, srgb.g / 255, srgb.b / 255)
    return HSV(h=round(h * 360, 2), s=round(s, 4), v=round(v, 4))


def dominant_colors(img: Image.Image, count: Optional[int] = None) -> List[Color]:
    """Largest palette entries first; pixel_fraction values sum to 1."""
    count = count or settings.dominant_colors
    rgb = img.convert("RGB")
    rgb.thumbnail(_ANALYSIS_SIZE)
    quantized = rgb.quantize(colors=count, method=Image.Quantize.MEDIANCUT)
    palette = quantized.getpalette()
    total = rgb.width * rgb.height

    colors = []
    for pixels, index in sorted(quantized.getcolors(), reverse=True):
        r, g, b = palette[index * 3:index * 3 + 3]
        srgb = SRGB(r=r, g=g, b=b)
        hsv = to_hsv(srgb)
        fraction = pixels / total
        colors.append(Color(
            srgb=srgb,
            hsv=hsv,
            shade=shade(hsv),
            color_name=color_name(hsv),
            pixel_fraction=round(fraction, 4),
            score=round(fraction, 4),
        ))
    return colors


def analyze(content: bytes) -> Tuple[ImageMetadata, List[Color]]:
    with Image.open(io.BytesIO(content)) as img:
        metadata = extract_metadata(img)
        colors = dominant_colors(img)
    logger.debug(
        "Analyzed %dx%d image: %d colors, gps=%s",
        metadata.pixel_xd or 0,
        metadata.pixel_yd or 0,
        len(colors),
        metadata.location is not None,
    )
    return metadata, colors
