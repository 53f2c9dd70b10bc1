from decimal import Decimal

import pytest

from paysync.domain.exceptions import PaymentMethodError, PaymentMethodNotOwned
from paysync.domain.models import CartItem

from conftest import CARD_ID, CUSTOMER_ID


def _default(store, user):
    return store.get_user_by_id(user.id).default_payment_method_id


@pytest.fixture
def cardless(store):
    return store.create_user("new@example.com", "cus_new")


class TestListing:
    def test_lists_customer_cards_with_default_flag(self, card_service, processor, user):
        processor.add_card("pm_card_mastercard", CUSTOMER_ID, last4="4444", brand="mastercard")
        processor.add_card("pm_other_customer", "cus_someone_else")

        cards = {card.id: card for card in card_service.list_cards(user.id)}

        assert set(cards) == {CARD_ID, "pm_card_mastercard"}
        assert cards[CARD_ID].is_default is True
        assert cards["pm_card_mastercard"].is_default is False
        assert cards["pm_card_mastercard"].to_dict()["last4"] == "4444"

    def test_user_without_customer_is_rejected(self, card_service, store):
        orphan = store.create_user("orphan@example.com", None)

        with pytest.raises(PaymentMethodError):
            card_service.list_cards(orphan.id)


class TestAdding:
    def test_first_card_becomes_default(self, card_service, processor, store, cardless):
        processor.add_card("pm_new", None)

        card = card_service.add_card(cardless.id, "pm_new")

        assert card.is_default is True
        assert _default(store, cardless) == "pm_new"
        assert processor.customer_defaults["cus_new"] == "pm_new"
        assert processor.payment_methods["pm_new"]["customer"] == "cus_new"

    def test_additional_card_keeps_existing_default(self, card_service, processor, store, user):
        processor.add_card("pm_second", None)

        card = card_service.add_card(user.id, "pm_second")

        assert card.is_default is False
        assert _default(store, user) == CARD_ID
        assert "set_customer_default_payment_method" not in processor.calls

    def test_additional_card_can_be_made_default(self, card_service, processor, store, user):
        processor.add_card("pm_second", None)

        card_service.add_card(user.id, "pm_second", make_default=True)

        assert _default(store, user) == "pm_second"

    def test_checkout_falls_back_to_added_card(self, card_service, checkout_service, processor, cardless):
        processor.add_card("pm_new", None)
        card_service.add_card(cardless.id, "pm_new")

        placed = checkout_service.checkout(cardless.id, [CartItem(name="Mug", price=Decimal("10.00"), quantity=1)])

        assert placed["payment_method"]["id"] == "pm_new"
        assert processor.intents[-1]["payment_method"] == "pm_new"


class TestDefaultAndUpdate:
    def test_set_default(self, card_service, processor, store, user):
        processor.add_card("pm_second", CUSTOMER_ID)

        card = card_service.set_default(user.id, "pm_second")

        assert card.is_default is True
        assert _default(store, user) == "pm_second"
        assert processor.customer_defaults[CUSTOMER_ID] == "pm_second"

    def test_set_default_rejects_foreign_card(self, card_service, processor, store, user):
        processor.add_card("pm_foreign", "cus_someone_else")

        with pytest.raises(PaymentMethodNotOwned):
            card_service.set_default(user.id, "pm_foreign")

        assert _default(store, user) == CARD_ID

    def test_update_expiry(self, card_service, user):
        card = card_service.update_card(user.id, CARD_ID, exp_month=3, exp_year=2031)

        assert (card.exp_month, card.exp_year) == (3, 2031)
        assert card.is_default is True


class TestDeletion:
    def test_deleting_default_promotes_remaining_card(self, card_service, processor, store, user):
        processor.add_card("pm_second", CUSTOMER_ID)

        new_default = card_service.delete_card(user.id, CARD_ID)

        assert new_default == "pm_second"
        assert _default(store, user) == "pm_second"
        assert processor.customer_defaults[CUSTOMER_ID] == "pm_second"
        assert processor.payment_methods[CARD_ID]["customer"] is None

    def test_deleting_last_card_clears_default(self, card_service, processor, store, user):
        assert card_service.delete_card(user.id, CARD_ID) is None

        assert _default(store, user) is None
        assert processor.customer_defaults[CUSTOMER_ID] is None

    def test_deleting_other_card_keeps_default(self, card_service, processor, store, user):
        processor.add_card("pm_second", CUSTOMER_ID)

        assert card_service.delete_card(user.id, "pm_second") == CARD_ID
        assert _default(store, user) == CARD_ID

    def test_deleting_foreign_card_is_rejected(self, card_service, processor, user):
        processor.add_card("pm_foreign", "cus_someone_else")

        with pytest.raises(PaymentMethodNotOwned):
            card_service.delete_card(user.id, "pm_foreign")

        assert processor.payment_methods["pm_foreign"]["customer"] == "cus_someone_else"
