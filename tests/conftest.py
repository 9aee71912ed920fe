"""Shared fixtures for the image fusion tests."""

from __future__ import annotations

import io

import pytest
from PIL import Image


def make_image_bytes(
    size: tuple[int, int] = (32, 24),
    color: tuple[int, int, int] = (200, 40, 40),
    fmt: str = "PNG",
) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes(color=(30, 60, 200), fmt="JPEG")


@pytest.fixture
def image_factory():
    return make_image_bytes
