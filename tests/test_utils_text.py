from image_fusion.utils.text import detect_language, normalize_label, unique


def test_normalize_label_collapses_separators():
    assert normalize_label("  Coffee_Cup ") == "coffee cup"
    assert normalize_label("Living-Room\tSofa") == "living room sofa"


def test_unique_keeps_first_seen_order():
    assert unique(["b", "a", "", "b", "c"]) == ["b", "a", "c"]


def test_detect_language_english():
    code, ratio = detect_language("The price of the coffee is on the board")
    assert code == "en"
    assert 0.0 < ratio <= 1.0


def test_detect_language_french():
    code, _ = detect_language("Le prix est dans la vitrine pour les clients")
    assert code == "fr"


def test_detect_language_unknown():
    assert detect_language("12345 !!") == ("unknown", 0.0)
    assert detect_language("xyzzy plugh") == ("unknown", 0.0)
