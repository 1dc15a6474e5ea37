from provider_scout.text.normalize import (
    clean_text_lines,
    dedupe_strings,
    first_non_empty,
    is_noisy_line,
    normalize_text,
    to_origin,
)


def test_html_entities():
    assert normalize_text("Food &amp; Shelter") == "Food & Shelter"
    assert normalize_text("It&#8217;s open") == "It’s open"
    assert normalize_text("9&nbsp;am") == "9 am"


def test_collapse_whitespace():
    assert normalize_text("Marion   Food\n\n  Pantry") == "Marion Food Pantry"


def test_empty_string():
    assert normalize_text("") == ""
    assert normalize_text("   ") == ""


def test_noisy_lines():
    assert is_noisy_line(".sqs-block-content")
    assert is_noisy_line("Powered by Squarespace")
    assert is_noisy_line("grid-area: 1 / 2")
    assert is_noisy_line("width: calc(100% - 2px)")
    assert is_noisy_line("x--gutter: 4px")
    assert is_noisy_line(".fe-block-yui_3")
    assert is_noisy_line("a { b }")
    assert not is_noisy_line("Open Monday 9am - 5pm")


def test_clean_text_lines():
    text = "  Welcome  \n\n.sqs-gallery {}\nOpen   daily\n"
    assert clean_text_lines(text) == ["Welcome", "Open daily"]


def test_dedupe_strings_by_whitespace():
    assert dedupe_strings(["Mon 9-5", "Mon  9-5", "", "Tue 9-5"]) == ["Mon 9-5", "Tue 9-5"]


def test_first_non_empty():
    assert first_non_empty([None, "  ", " x "]) == "x"
    assert first_non_empty([]) == ""


def test_to_origin():
    assert to_origin("https://pantry.example.org/about?x=1#top") == "https://pantry.example.org"
    assert to_origin("http://localhost:8080/a") == "http://localhost:8080"
    assert to_origin("not a url") == "not a url"
    assert to_origin("") == ""
