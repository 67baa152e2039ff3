from app.utils.json_extract import extract_first_json_object


def test_parses_bare_object():
    assert extract_first_json_object('{"intent": "help_request", "confidence": 0.9}') == {
        "intent": "help_request",
        "confidence": 0.9,
    }


def test_tolerates_surrounding_prose_and_fences():
    text = 'Sure! Here you go:\n```json\n{"intent": "add_to_cart", "confidence": 0.8}\n```\nAnything else?'

    assert extract_first_json_object(text)["intent"] == "add_to_cart"


def test_braces_inside_strings_do_not_end_the_object():
    text = 'prefix {"reasoning": "matched } and {", "parameters": {"target": "cart"}} suffix'

    result = extract_first_json_object(text)

    assert result == {"reasoning": "matched } and {", "parameters": {"target": "cart"}}


def test_skips_unbalanced_candidate():
    text = 'oops { not json at all {"intent": "search_content", "confidence": 0.7}'

    assert extract_first_json_object(text) == {"intent": "search_content", "confidence": 0.7}


def test_returns_none_without_object():
    assert extract_first_json_object("no json here") is None
    assert extract_first_json_object("") is None
    assert extract_first_json_object(None) is None
    assert extract_first_json_object("[1, 2, 3]") is None
