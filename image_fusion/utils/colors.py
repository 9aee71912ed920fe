"""Colour statistics computed with Pillow."""

from __future__ import annotations

from collections import Counter

from PIL import Image, ImageStat


def brightness_level(image: Image.Image) -> tuple[str, float]:
    """Classify overall exposure from the mean RGB value."""
    stat = ImageStat.Stat(image.convert("RGB"))
    brightness = sum(stat.mean[:3]) / (3 * 255)
    if brightness > 0.75:
        return "bright", brightness
    if brightness < 0.25:
        return "dark", brightness
    return "balanced", brightness


def orientation(image: Image.Image) -> str:
    width, height = image.size
    if width > height:
        return "landscape"
    if height > width:
        return "portrait"
    return "square"


def dominant_colors(image: Image.Image, *, limit: int = 3) -> list[tuple[str, float]]:
    """Return the most frequent quantised colours as ``(hex, share)`` pairs."""
    quantized = image.convert("RGB").resize((64, 64)).quantize(colors=8).convert("RGB")
    colors = quantized.getcolors(64 * 64) or []
    total = sum(count for count, _ in colors) or 1
    ranked = sorted(colors, key=lambda item: (-item[0], item[1]))
    return [(to_hex(color), count / total) for count, color in ranked[:limit]]


def palette(image: Image.Image, *, limit: int = 4) -> list[tuple[str, float]]:
    """Return human-readable colour families ranked by pixel share."""
    quantized = image.convert("RGB").resize((64, 64))
    colors = quantized.getcolors(64 * 64) or []
    if not colors:
        return []
    total = sum(count for count, _ in colors)
    counter: Counter[str] = Counter()
    for count, color in colors:
        counter[label_color(color)] += count
    return [(name, score / total) for name, score in counter.most_common(limit)]


def label_color(rgb: tuple[int, int, int]) -> str:
    r, g, b = rgb
    if max(rgb) < 40:
        return "black"
    if min(rgb) > 215:
        return "white"
    if abs(r - g) < 15 and abs(g - b) < 15:
        return "gray"
    if r > 180 and g > 180 and b < 120:
        return "yellow"
    if r > 180 and b > 180 and g < 120:
        return "magenta"
    if g > 180 and b > 180 and r < 120:
        return "cyan"
    if r > g and r > b:
        if g > 100 and b < 80:
            return "orange" if r > 200 else "brown"
        return "red"
    if g > r and g > b:
        return "green"
    if b > r and b > g:
        return "blue"
    return "multicolor"


def color_mood(labels: list[str], brightness: str) -> str:
    """Map the leading colour families and exposure to a mood keyword."""
    warm = {"red", "orange", "yellow", "magenta", "brown"}
    cool = {"blue", "cyan", "green"}
    neutral = {"black", "white", "gray"}
    head = labels[:2]
    if brightness == "dark":
        return "dramatic"
    if any(label in warm for label in head):
        return "warm"
    if any(label in cool for label in head):
        return "calm"
    if head and all(label in neutral for label in head):
        return "professional"
    return "neutral"


def to_hex(rgb: tuple[int, int, int]) -> str:
    r, g, b = rgb[:3]
    return f"#{r:02X}{g:02X}{b:02X}"
