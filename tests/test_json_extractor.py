from archai.interview.json_extractor import JSONExtractor


def test_plain_json():
    assert JSONExtractor().extract_json('{"correction": "Widen the hall"}') == {"correction": "Widen the hall"}


def test_code_block_with_trailing_comma():
    response = 'Here you go:\n```json\n{"response": "Hi", "nextStage": "vision",}\n```\nAnything else?'
    assert JSONExtractor().extract_json(response) == {"response": "Hi", "nextStage": "vision"}


def test_object_embedded_in_prose_with_braces_in_strings():
    response = 'Sure! {"critique": "The {kitchen} is cramped", "correction": "Enlarge it"} Hope that helps.'
    data = JSONExtractor().extract_json(response)
    assert data == {"critique": "The {kitchen} is cramped", "correction": "Enlarge it"}


def test_array_extraction():
    assert JSONExtractor().extract_json("Rooms: [1, 2, 3]", expect_type="array") == [1, 2, 3]


def test_nothing_to_extract():
    extractor = JSONExtractor()
    assert extractor.extract_json("") is None
    assert extractor.extract_json("no json here") is None

