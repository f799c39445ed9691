from codediag.services.extract import classify_extracted, extract_codes


def test_extracts_codes_in_order():
    assert extract_codes("Check engine light, code P0171 and maybe P0300 too") == ["P0171", "P0300"]


def test_dedupes_case_insensitively():
    assert extract_codes("p0300 then P0300 again, also u0100") == ["P0300", "U0100"]


def test_whole_tokens_only():
    assert extract_codes("XP0300 P03001 P0300") == ["P0300"]
    assert extract_codes("") == []
    assert extract_codes(None) == []


def test_verified_title_when_known():
    e = classify_extracted("p0171")
    assert e.found is True
    assert e.title == "System Too Lean (Bank 1)"


def test_category_label_when_unknown():
    generic = classify_extracted("P0999")
    assert generic.found is False
    assert generic.title == "Unknown Powertrain Code"

    oem = classify_extracted("B2999")
    assert oem.found is False
    assert oem.title == "Manufacturer-Specific Body Code"
