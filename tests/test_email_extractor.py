import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import email_extractor
from email_extractor import extract_from_html, extract_from_text, is_valid_email


def test_script_and_style_contents_are_ignored():
    html = "<script>var a='fake@leak.com'</script><p>real@firm.io</p>"
    assert extract_from_html(html) == ["real@firm.io"]

    html = (
        '<style type="text/css">/* styled@leak.com */</style>'
        '<SCRIPT src="x.js">hidden@leak.com</SCRIPT>'
        "<div>Reach me at Jane.Smith@Gmail.com</div>"
    )
    assert extract_from_html(html) == ["jane.smith@gmail.com"]


def test_text_extraction_keeps_first_seen_order_and_dedupes():
    text = "b@firm.io, A@firm.io and again b@firm.io then c@firm.io"
    assert extract_from_text(text) == ["b@firm.io", "a@firm.io", "c@firm.io"]


def test_excluded_domains_and_asset_names_are_dropped():
    text = (
        "test@example.com placeholder@test.com x@sample.com y@domain.com "
        "logo@2x.png icon@brand.svg keep.me@outlook.com"
    )
    assert extract_from_text(text) == ["keep.me@outlook.com"]


def test_provider_filter_is_a_subset_with_matching_suffix():
    html = """
    <ul>
      <li>priya.sharma@gmail.com</li>
      <li>rahul@yahoo.com</li>
      <li>ankit.kumar@GMAIL.com</li>
      <li>someone@notgmail.co</li>
    </ul>
    """
    everything = extract_from_html(html)
    gmail = extract_from_html(html, "@gmail.com")
    assert gmail == ["priya.sharma@gmail.com", "ankit.kumar@gmail.com"]
    assert set(gmail) <= set(everything)
    assert all(e.endswith("@gmail.com") for e in gmail)
    # provider without the leading "@" is normalised
    assert extract_from_html(html, "gmail.com") == gmail


def test_extraction_is_idempotent_over_its_output():
    html = "<p>one@firm.io</p><p>two@firm.io</p><p>bad@example.com</p>"
    first = extract_from_html(html)
    assert extract_from_text(" ".join(first)) == first


def test_every_returned_address_is_valid():
    text = "good@firm.io weird@@firm.io a..b@firm.io ok_name+tag@company.org"
    for email in extract_from_text(text):
        assert is_valid_email(email)
        assert not email_extractor.is_excluded(email)


def test_exclusion_matches_whole_domains_only():
    assert email_extractor.is_excluded("x@example.com")
    assert email_extractor.is_excluded("x@mail.example.com")
    assert email_extractor.is_excluded("x@TEST.com")
    assert not email_extractor.is_excluded("x@latest.com")
    assert not email_extractor.is_excluded("x@mydomain.com")
    assert extract_from_text("a@latest.com b@test.com") == ["a@latest.com"]


def test_is_valid_email_rejects_excluded_and_malformed():
    assert is_valid_email("john.doe@company.com")
    assert not is_valid_email("john.doe@example.com")
    assert not is_valid_email("not-an-email")
    assert not is_valid_email("")


def test_empty_input_returns_empty_list():
    assert extract_from_html("") == []
    assert extract_from_text(None) == []
