# habitrun/vision.py
"""
Image-understanding client: reads distance and duration off a workout
summary screenshot.

The model's answer is treated as untrusted input. Whatever comes back is
shape- and range-checked by ``parse_extraction`` before anyone uses it, and
any failure (no client, transport error, bad JSON) turns into a zeroed
``Extraction`` with ``failed=True`` instead of an exception. The submission
flow reports a failed extraction as an analysis failure; its zeroed numbers
would fail the verification policy anyway.
"""
import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import cv2
import numpy as np
from openai import OpenAI

from .challenge_core import clean_number

logger = logging.getLogger(__name__)

FAILURE_REASONING = "Image analysis failed."
JPEG_QUALITY = 90

EXTRACTION_PROMPT = """Analyze this workout record. Extract:
1. Distance (convert miles to km if needed).
2. Duration (time elapsed) in minutes. Convert hours/seconds to minutes
   (e.g. 1h 30m -> 90, 45:00 -> 45).

Return raw numbers. Do not validate logic.
Respond with a JSON object with exactly these keys:
  "distance": number, kilometers, 0 if not found
  "durationInMinutes": number, minutes, 0 if not found
  "reasoning": short explanation of the extracted values
"""

_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")


@dataclass(frozen=True)
class Extraction:
    distance_km: float
    duration_minutes: float
    reasoning: str
    failed: bool = False

    def to_dict(self):
        return {
            "distance_km": self.distance_km,
            "duration_minutes": self.duration_minutes,
            "reasoning": self.reasoning,
            "failed": self.failed,
        }


def failed_extraction(reasoning: str = FAILURE_REASONING) -> Extraction:
    return Extraction(distance_km=0.0, duration_minutes=0.0, reasoning=reasoning, failed=True)


def _number(value: Any) -> float:
    # JSON numbers only; strings like "5.2km" don't count
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return 0.0
    return clean_number(value)


def parse_extraction(payload: Any) -> Extraction:
    """Range/shape-check a decoded model answer."""
    if not isinstance(payload, dict):
        return failed_extraction("Image analysis returned an unexpected shape.")

    reasoning = payload.get("reasoning")
    if not isinstance(reasoning, str):
        reasoning = ""

    return Extraction(
        distance_km=_number(payload.get("distance")),
        duration_minutes=_number(payload.get("durationInMinutes")),
        reasoning=reasoning.strip(),
    )


def parse_model_text(text: Optional[str]) -> Extraction:
    if not text:
        return failed_extraction("No response from image analysis.")
    clean_text = _FENCE_RE.sub("", text).strip()
    try:
        payload = json.loads(clean_text)
    except ValueError:
        logger.warning("Image analysis returned non-JSON text: %r", clean_text[:200])
        return failed_extraction()
    return parse_extraction(payload)


def decode_image(image_bytes: bytes):
    """Decode bytes -> BGR array, or None if this isn't an image OpenCV reads."""
    if not image_bytes:
        return None
    np_arr = np.frombuffer(image_bytes, np.uint8)
    return cv2.imdecode(np_arr, cv2.IMREAD_COLOR)


def prepare_image(image_bytes: bytes, max_side: int = 1280) -> Optional[str]:
    """Downscale (long side <= max_side), re-encode as JPEG, base64 it."""
    bgr = decode_image(image_bytes)
    if bgr is None:
        return None

    h, w = bgr.shape[:2]
    longest = max(h, w)
    if longest > max_side:
        scale = max_side / float(longest)
        bgr = cv2.resize(
            bgr, (max(1, int(w * scale)), max(1, int(h * scale))), interpolation=cv2.INTER_AREA
        )

    ok, buf = cv2.imencode(".jpg", bgr, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
    if not ok:
        return None
    return base64.b64encode(buf.tobytes()).decode("ascii")


class VisionClient:
    def __init__(self, client=None, model: str = "gpt-4o-mini", max_side: int = 1280):
        self.client = client
        self.model = model
        self.max_side = max_side

    @classmethod
    def from_config(cls, config) -> "VisionClient":
        api_key = config.get("OPENAI_API_KEY")
        client = None
        if api_key:
            client = OpenAI(api_key=api_key)
        return cls(
            client=client,
            model=config.get("VISION_MODEL", "gpt-4o-mini"),
            max_side=int(config.get("VISION_MAX_IMAGE_SIDE", 1280)),
        )

    def extract(self, image_bytes: bytes) -> Extraction:
        if self.client is None:
            logger.warning("Image analysis requested but no OpenAI client is configured")
            return failed_extraction("Image analysis is not configured.")

        b64 = prepare_image(image_bytes, self.max_side)
        if b64 is None:
            return failed_extraction("Uploaded file could not be read as an image.")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=0.1,
                response_format={"type": "json_object"},
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": EXTRACTION_PROMPT},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/jpeg;base64,{b64}"},
                            },
                        ],
                    }
                ],
            )
            text = response.choices[0].message.content
        except Exception:
            logger.exception("Image analysis request failed")
            return failed_extraction()

        return parse_model_text(text)
