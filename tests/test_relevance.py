# tests/test_relevance.py

from card_crawler.relevance import RelevanceRules, is_relevant, score_relevance

CARD_URL = "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card"


def _bare_rules(**overrides):
    kwargs = dict(
        high_priority=[],
        medium_priority=[],
        off_topic=[],
        url_tokens=[],
        document_hints=[],
    )
    kwargs.update(overrides)
    return RelevanceRules(**kwargs)


def test_url_bonuses():
    rules = _bare_rules(url_tokens=[("regalia", 8), ("gold", 3)])
    assert score_relevance("", CARD_URL, rules) == 5 + 8 + 3
    assert score_relevance("", "https://www.hdfcbank.com/personal/savings", rules) == 0


def test_keyword_occurrences_counted():
    rules = _bare_rules(high_priority=["fees"], medium_priority=["lounge"])
    text = "Fees and more fees. Lounge access at every lounge. LOUNGE."
    assert score_relevance(text, "https://www.hdfcbank.com/x", rules) == 2 * 2 + 3


def test_off_topic_penalty_applied_once_per_keyword():
    rules = _bare_rules(high_priority=["credit card"], off_topic=["forex", "upi"])
    text = "credit card credit card credit card forex forex forex upi"
    assert score_relevance(text, "https://www.hdfcbank.com/x", rules) == 6 - 3 - 3


def test_score_never_negative():
    rules = _bare_rules(off_topic=["forex"])
    assert score_relevance("forex", "https://www.hdfcbank.com/x", rules) == 0


def test_document_hint_bonus():
    rules = _bare_rules(document_hints=[".pdf", "download"])
    assert score_relevance("Download the MITC", "https://www.hdfcbank.com/x", rules) == 2


def test_default_rules_accept_card_page_and_reject_unrelated():
    card_text = "Regalia Gold credit card fees and charges, rewards and lounge benefits."
    unrelated = "Send money abroad with UPI and forex remittance."

    assert is_relevant(score_relevance(card_text, "https://www.hdfcbank.com/help"))
    assert not is_relevant(score_relevance(unrelated, "https://www.hdfcbank.com/help"))


def test_threshold_is_inclusive():
    assert is_relevant(3)
    assert not is_relevant(2)
    assert is_relevant(5, minimum=5)
