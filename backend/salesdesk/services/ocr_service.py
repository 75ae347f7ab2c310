# Overview: Serial-number OCR collaborator (placeholder reader).

"""
Serial extraction from photos.

SerialReader stands in for a real OCR engine. It derives a plausible serial
from the file name and the current time, with a confidence between 0.70 and
0.95. Replace it through app.extensions["serial_reader"].
"""

from __future__ import annotations

import random
import re
import time

from flask import current_app

from .image_service import call_with_timeout

LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def clean_serial(value: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", (value or "").upper())


def looks_like_serial(value: str) -> bool:
    """At least 6 characters mixing letters and digits."""
    if not value or len(value) < 6:
        return False
    return bool(re.search(r"[A-Za-z]", value)) and bool(re.search(r"[0-9]", value))


class SerialReader:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def extract(self, data: bytes, filename: str) -> dict:
        """Return {text, confidence}."""
        prefix = clean_serial(filename.rsplit(".", 1)[0])[:3] or "SN"
        stamp = str(int(time.time() * 1000))[-6:]
        suffix = "".join(self.rng.choice(LETTERS) for _ in range(3))
        confidence = round(0.70 + self.rng.random() * 0.25, 2)
        return {"text": f"{prefix}{stamp}{suffix}", "confidence": confidence}


def get_reader():
    reader = current_app.extensions.get("serial_reader")
    if reader is None:
        reader = SerialReader()
        current_app.extensions["serial_reader"] = reader
    return reader


def read_serial(data: bytes, filename: str) -> dict:
    return call_with_timeout(get_reader().extract, data, filename)
