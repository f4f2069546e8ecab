from tournament_ingest.services.candidate_facts import FactKind
from tournament_ingest.services.extractors.facts import decode_cf_email, extract_page_facts, is_likely_email

SITE_URL = "https://rosecity.org/"
HOME_PAGE = """
<html>
<head><title>Rose City Classic</title><script>var contact = "noreply@example.com";</script></head>
<body>
  <h1>Rose City Classic</h1>
  <p>Tournament dates: June 14-16, 2026</p>
  <h2>Contacts</h2>
  <p>Tournament Director: Jane Smith <a href="mailto:jane@rosecity.org">Email Jane</a> (503) 555-0142</p>
  <p>Referee Assignor: Bob Jones
    <a href="/cdn-cgi/l/email-protection#42202d2002302d3127212b363b6c2d3025">[email&#160;protected]</a></p>
  <p>General questions: info [at] rosecity [dot] org</p>
  <p>Website by builder@wixpress.com</p>
  <h2>Fields</h2>
  <p>Delta Park Complex, <a href="https://maps.google.com/?q=delta+park">10737 N Union Ct, Portland, OR 97217</a></p>
  <h2>Referees</h2>
  <p>Referee pay is $45-$60 per game.</p>
  <p>Hotel rooms are provided for traveling referees.</p>
  <p>Cash paid at the field after the final game.</p>
  <p>Team entry fee is $650.</p>
  <a href="/contact-us">Contact</a>
  <a href="/referees">Referee info</a>
  <a href="https://other.example.com/contact">Other site</a>
  <a href="/schedule.pdf">Schedule</a>
</body>
</html>
"""


def test_cloudflare_protected_addresses_decode() -> None:
    assert decode_cf_email("42202d2002302d3127212b363b6c2d3025") == "bob@rosecity.org"
    assert decode_cf_email("zz") is None
    assert decode_cf_email("42") is None


def test_likely_email_filters_vendor_and_system_addresses() -> None:
    assert is_likely_email("jane@rosecity.org")
    assert not is_likely_email("noreply@rosecity.org")
    assert not is_likely_email("builder@wixpress.com")
    assert not is_likely_email("logo@2x.png")
    assert not is_likely_email("someone@example.com")


def test_contacts_carry_role_name_and_nearby_phone() -> None:
    contacts = extract_page_facts(HOME_PAGE, SITE_URL).facts[FactKind.CONTACT]

    by_email = {contact["email"]: contact for contact in contacts}
    assert sorted(by_email) == ["bob@rosecity.org", "info@rosecity.org", "jane@rosecity.org"]
    assert by_email["jane@rosecity.org"]["role"] == "director"
    assert by_email["jane@rosecity.org"]["name"] == "Jane Smith"
    assert by_email["jane@rosecity.org"]["phone"] == "(503) 555-0142"
    assert by_email["jane@rosecity.org"]["confidence"] == 0.9
    assert by_email["bob@rosecity.org"]["role"] == "assignor"
    assert by_email["bob@rosecity.org"]["name"] == "Bob Jones"
    assert by_email["info@rosecity.org"]["role"] == "general"
    assert by_email["info@rosecity.org"]["name"] is None
    assert all(contact["source_url"] == SITE_URL for contact in contacts)


def test_venue_splits_name_from_street_address() -> None:
    venues = extract_page_facts(HOME_PAGE, SITE_URL).facts[FactKind.VENUE]

    assert len(venues) == 1
    venue = venues[0]
    assert venue["venue_name"] == "Delta Park Complex"
    assert venue["address_text"] == "10737 N Union Ct, Portland, OR 97217"
    assert venue["venue_url"] == "https://maps.google.com/?q=delta+park"
    assert venue["confidence"] == 0.9


def test_comp_lines_need_referee_context() -> None:
    facts = extract_page_facts(HOME_PAGE, SITE_URL).facts

    [rate] = facts[FactKind.COMP_RATE]
    assert rate["rate_text"] == "Referee pay is $45-$60 per game."
    assert (rate["rate_amount_min"], rate["rate_amount_max"]) == (45.0, 60.0)
    assert rate["rate_unit"] == "per_game"

    [hotel] = facts[FactKind.COMP_HOTEL]
    assert hotel["travel_lodging"] == "hotel"
    assert hotel["rate_amount_min"] is None

    [cash] = facts[FactKind.COMP_CASH]
    assert cash["rate_text"] == "Cash paid at the field after the final game."

    assert not any("entry fee" in fact["rate_text"] for fact in facts[FactKind.COMP_RATE])


def test_dated_phrases_become_date_facts() -> None:
    [found] = extract_page_facts(HOME_PAGE, SITE_URL).facts[FactKind.DATE]

    assert found["date_text"] == "June 14-16, 2026"
    assert (found["start_date"], found["end_date"]) == ("2026-06-14", "2026-06-16")
    assert found["confidence"] == 0.6


def test_links_stay_on_site_and_rank_referee_pages_first() -> None:
    result = extract_page_facts(HOME_PAGE, SITE_URL)

    assert result.links == ["https://rosecity.org/referees", "https://rosecity.org/contact-us"]


def test_pages_without_facts_yield_nothing() -> None:
    assert extract_page_facts("", SITE_URL).total() == 0
    result = extract_page_facts("<html><body><p>Welcome to the club!</p></body></html>", SITE_URL)
    assert result.facts == {}
    assert result.links == []
