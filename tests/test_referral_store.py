"""Tests for the referral store and ledger."""

import pytest

from conftest import CHECKOUT_URL, REFERRER_ID

from reftrack.referral.codes import MAX_CODE_LENGTH, REF_CODE_PATTERN, generate_code
from reftrack.referral.service import ReferralLedger, build_referral_link
from reftrack.storage.repo import MAX_CODE_ATTEMPTS, CodeGenerationError


class TestCodes:
    def test_generated_code_shape(self):
        code = generate_code(REFERRER_ID)
        prefix, suffix = code.rsplit("-", 1)
        assert prefix == REFERRER_ID
        assert len(suffix) == 6
        assert REF_CODE_PATTERN.fullmatch(code)

    def test_long_user_id_keeps_suffix(self):
        code = generate_code("9" * 80)
        assert len(code) <= MAX_CODE_LENGTH
        assert len(code.rsplit("-", 1)[1]) == 6

    def test_code_is_stable_per_user(self, store):
        first = store.get_or_create_code(REFERRER_ID)
        second = store.get_or_create_code(REFERRER_ID)
        assert first == second
        assert store.resolve_code(first) == REFERRER_ID

    def test_unknown_code_resolves_to_none(self, store):
        assert store.resolve_code("000000000000-nope00") is None
        assert store.resolve_code("") is None

    def test_collision_is_retried(self, store):
        taken = store.get_or_create_code("111")
        candidates = iter([taken, "222-fresh1"])

        code = store.get_or_create_code("222", generate=lambda _uid: next(candidates))

        assert code == "222-fresh1"
        assert store.resolve_code(taken) == "111"
        assert store.resolve_code(code) == "222"

    def test_gives_up_after_max_attempts(self, store):
        taken = store.get_or_create_code("111")
        calls = []

        def always_taken(user_id):
            calls.append(user_id)
            return taken

        with pytest.raises(CodeGenerationError):
            store.get_or_create_code("222", generate=always_taken)
        assert len(calls) == MAX_CODE_ATTEMPTS


class TestUsers:
    def test_first_reference_creates_zeroed_user(self, store):
        user = store.get_or_create_user("42")
        assert user.referral_count == 0
        assert user.rewarded is False

    def test_get_user_does_not_create(self, store):
        assert store.get_user("nobody") is None
        assert store.get_user("nobody") is None

    def test_increment_creates_and_counts(self, store):
        store.increment_referral("7")
        user = store.increment_referral("7")
        assert user.referral_count == 2
        assert store.get_user("7").referral_count == 2

    def test_set_rewarded_only_flips_once(self, store):
        assert store.set_rewarded("7") is True
        assert store.set_rewarded("7") is False
        assert store.get_user("7").rewarded is True

    def test_set_referrals_overwrites(self, store):
        store.add_referrals("7", 5)
        user = store.set_referrals("7", 1, rewarded=True)
        assert user.referral_count == 1
        assert user.rewarded is True


class TestProcessedEvents:
    def test_mark_is_idempotent(self, store):
        assert store.has_processed_event("evt_1") is False
        assert store.mark_processed_event("evt_1", "invoice.paid") is True
        assert store.mark_processed_event("evt_1", "invoice.paid") is False
        assert store.has_processed_event("evt_1") is True

    def test_empty_id_never_recorded(self, store):
        assert store.mark_processed_event("") is False
        assert store.has_processed_event("") is False


class TestLedger:
    def test_credit_and_progress(self, store):
        ledger = ReferralLedger(store)
        ledger.credit(REFERRER_ID)
        assert ledger.progress(REFERRER_ID).referral_count == 1

    def test_code_round_trip(self, store):
        ledger = ReferralLedger(store)
        code = ledger.code_for(REFERRER_ID)
        assert ledger.user_for(code) == REFERRER_ID
        assert ledger.user_for(None) is None


class TestReferralLink:
    def test_appends_ref(self):
        assert build_referral_link(CHECKOUT_URL, "abc") == f"{CHECKOUT_URL}?ref=abc"

    def test_replaces_existing_ref_and_keeps_other_params(self):
        link = build_referral_link("https://whop.com/c?ref=old&utm=x", "new")
        assert link == "https://whop.com/c?utm=x&ref=new"

    def test_unusable_checkout_url(self):
        assert build_referral_link("", "abc") is None
        assert build_referral_link(None, "abc") is None
        assert build_referral_link("whop.com/checkout", "abc") is None
        assert build_referral_link("ftp://whop.com/checkout", "abc") is None
