"""
Tests for the store functions the core relies on.
"""

import pytest
from sqlalchemy.exc import OperationalError

from burst_sms import storage
from burst_sms.exceptions import StoreError
from burst_sms.models import Lead, MessageRecord, OptInState

from conftest import ORG_ID, add_lead, add_prompt, add_queued, fetch


class TestQueuedOutbound:

    def test_filters_by_org_direction_status(self, db):
        lead = add_lead(db, "+15550000001")
        wanted = add_queued(db, lead)
        add_queued(db, lead, org_id="org-2")
        sent = add_queued(db, lead)
        sent.status = "sent"
        inbound = add_queued(db, lead)
        inbound.direction = "inbound"
        db.commit()

        rows = storage.query_queued_outbound(db, ORG_ID)

        assert [r.id for r in rows] == [wanted.id]

    def test_ordered_by_id(self, db):
        lead = add_lead(db, "+15550000001")
        ids = [add_queued(db, lead).id for _ in range(3)]

        assert [r.id for r in storage.query_queued_outbound(db, ORG_ID)] == ids

    def test_failure_raises_store_error(self, db, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("no such table: lead_texts"))

        monkeypatch.setattr(db, "scalars", broken)

        with pytest.raises(StoreError):
            storage.query_queued_outbound(db, ORG_ID)


class TestUpdateMessageStatus:

    def test_only_from_queued(self, db):
        record = add_queued(db, add_lead(db, "+15550000001"))

        assert storage.update_message_status(db, record.id, "failed", None, "boom")
        assert not storage.update_message_status(db, record.id, "sent", "tx-1", None)

        row = fetch(db, MessageRecord, record.id)
        assert (row.status, row.telnyx_message_id, row.error) == ("failed", None, "boom")

    def test_unknown_id_is_noop(self, db):
        assert not storage.update_message_status(db, 9999, "sent", "tx-1", None)


class TestLeadStore:

    def test_find_by_phone(self, db):
        lead = add_lead(db, "+15550000001")

        assert storage.find_lead_by_phone(db, "+15550000001").id == lead.id
        assert storage.find_lead_by_phone(db, "+15550000002") is None
        assert storage.find_lead_by_phone(db, None) is None

    def test_update_opt_in(self, db):
        lead = add_lead(db, "+15550000001")
        assert lead.opt_in_state is OptInState.UNDECIDED

        storage.update_opt_in(db, lead.id, False)

        assert fetch(db, Lead, lead.id).opt_in_state is OptInState.OPTED_OUT

    def test_message_status_compare_and_set(self, db):
        queued = add_lead(db, "+15550000001", message_status="queued")
        other = add_lead(db, "+15550000002", message_status=None)

        assert storage.update_message_status_if_queued(db, queued.id, "sent")
        assert not storage.update_message_status_if_queued(db, queued.id, "sent")
        assert not storage.update_message_status_if_queued(db, other.id, "sent")

        assert fetch(db, Lead, queued.id).message_status == "sent"
        assert fetch(db, Lead, other.id).message_status is None


class TestReplyPrompt:

    def test_found(self, db):
        add_prompt(db, "Thanks for the reply!")
        assert storage.get_reply_prompt(db, ORG_ID) == "Thanks for the reply!"

    def test_missing_or_blank(self, db):
        assert storage.get_reply_prompt(db, ORG_ID) is None
        add_prompt(db, "", org_id="org-2")
        assert storage.get_reply_prompt(db, "org-2") is None


class TestOptInState:

    @pytest.mark.parametrize("flag,state", [
        (None, OptInState.UNDECIDED),
        (True, OptInState.OPTED_IN),
        (False, OptInState.OPTED_OUT),
    ])
    def test_from_flag(self, flag, state):
        assert OptInState.from_flag(flag) is state
        assert state.is_decided is (flag is not None)


def test_db_health(db):
    assert storage.check_db_health()
