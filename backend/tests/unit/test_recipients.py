"""Unit tests for the recipient store and its claim protocol."""
import threading
import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from mailer.db.base import build_engine, init_db
from mailer.db.models import Campaign, CampaignStatus, Recipient, RecipientStatus
from mailer.services import recipients as recipient_store


def _statuses(db, campaign_id):
    return [r.status for r in db.scalars(
        select(Recipient).where(Recipient.campaign_id == campaign_id).order_by(Recipient.id)
    )]


class TestClaimPending:
    """Tests for claim_pending."""

    def test_claims_in_insertion_order(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=5, status=CampaignStatus.RUNNING)

        claimed = recipient_store.claim_pending(db_session, campaign.id, 2)

        assert [r.email for r in claimed] == ["user0@example.com", "user1@example.com"]
        assert all(r.status == RecipientStatus.SENDING for r in claimed)
        assert _statuses(db_session, campaign.id).count(RecipientStatus.PENDING) == 3

    def test_limit_larger_than_pending(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=3, status=CampaignStatus.RUNNING)
        claimed = recipient_store.claim_pending(db_session, campaign.id, 30)
        assert len(claimed) == 3

    def test_refused_while_batch_in_flight(self, db_session, make_campaign):
        """A second claim returns nothing until the first batch is recorded."""
        campaign = make_campaign(recipient_count=6, status=CampaignStatus.RUNNING)
        first = recipient_store.claim_pending(db_session, campaign.id, 2)

        assert recipient_store.claim_pending(db_session, campaign.id, 2) == []

        recipient_store.mark_sent(db_session, [r.id for r in first], 1)
        second = recipient_store.claim_pending(db_session, campaign.id, 2)
        assert [r.email for r in second] == ["user2@example.com", "user3@example.com"]

    @pytest.mark.parametrize("status", [CampaignStatus.DRAFT, CampaignStatus.PAUSED, CampaignStatus.STOPPED])
    def test_not_running_claims_nothing(self, db_session, make_campaign, status):
        campaign = make_campaign(recipient_count=3, status=status)
        assert recipient_store.claim_pending(db_session, campaign.id, 2) == []
        assert set(_statuses(db_session, campaign.id)) == {RecipientStatus.PENDING}

    def test_nothing_pending(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=2, status=CampaignStatus.RUNNING)
        claimed = recipient_store.claim_pending(db_session, campaign.id, 2)
        recipient_store.mark_failed(db_session, [r.id for r in claimed], "boom", 1)
        assert recipient_store.claim_pending(db_session, campaign.id, 2) == []

    def test_conditional_update_skips_rows_no_longer_pending(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=2, status=CampaignStatus.RUNNING)
        ids = recipient_store.select_pending_ids(db_session, campaign.id, 2)
        recipient_store.mark_sent(db_session, ids, 1)

        assert recipient_store.mark_sending(db_session, ids) == 0

    def test_concurrent_claimers_get_disjoint_results(self, tmp_path):
        """Two sessions racing on the same campaign: exactly one wins."""
        engine = build_engine(f"sqlite:///{tmp_path / 'claims.db'}")
        init_db(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        campaign = Campaign(
            user_email="owner@example.com", subject="s", body="b",
            batch_size=5, status=CampaignStatus.RUNNING, total_recipients=10
        )
        setup.add(campaign)
        setup.flush()
        recipient_store.add_recipients(setup, campaign.id, [f"r{i}@example.com" for i in range(10)])
        setup.commit()
        campaign_id = campaign.id
        setup.close()

        barrier = threading.Barrier(2)
        results = []
        errors = []

        def claim():
            db = Session()
            try:
                barrier.wait()
                results.append([r.id for r in recipient_store.claim_pending(db, campaign_id, 5)])
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=claim) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        assert sorted(len(r) for r in results) == [0, 5]

        check = Session()
        assert _statuses(check, campaign_id).count(RecipientStatus.SENDING) == 5
        check.close()
        engine.dispose()


class TestOutcomes:
    """Tests for mark_sent / mark_failed and progress aggregation."""

    def test_mark_sent_sets_batch_and_timestamp(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=3, status=CampaignStatus.RUNNING)
        claimed = recipient_store.claim_pending(db_session, campaign.id, 2)

        recipient_store.mark_sent(db_session, [r.id for r in claimed], 1)

        rows = db_session.scalars(select(Recipient).where(Recipient.id.in_([r.id for r in claimed]))).all()
        for row in rows:
            assert row.status == RecipientStatus.SENT
            assert row.batch_number == 1
            assert row.sent_at is not None

    def test_mark_failed_records_error(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=2, status=CampaignStatus.RUNNING)
        claimed = recipient_store.claim_pending(db_session, campaign.id, 2)

        recipient_store.mark_failed(db_session, [r.id for r in claimed], "quota exceeded", 3)

        rows = db_session.scalars(select(Recipient).where(Recipient.campaign_id == campaign.id)).all()
        assert {r.error_message for r in rows} == {"quota exceeded"}
        assert {r.batch_number for r in rows} == {3}
        assert all(r.sent_at is None for r in rows)

    def test_progress_counts_every_status(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=7, batch_size=2, status=CampaignStatus.RUNNING)
        first = recipient_store.claim_pending(db_session, campaign.id, 2)
        recipient_store.mark_sent(db_session, [r.id for r in first], 1)
        second = recipient_store.claim_pending(db_session, campaign.id, 2)
        recipient_store.mark_failed(db_session, [r.id for r in second], "err", 2)
        recipient_store.claim_pending(db_session, campaign.id, 2)

        progress = recipient_store.get_progress(db_session, campaign.id)

        assert progress.total == 7
        assert progress.sent == 2
        assert progress.failed == 2
        assert progress.sending == 2
        assert progress.pending == 1
        assert progress.sent + progress.failed + progress.pending + progress.sending == progress.total

    def test_progress_of_unknown_campaign_is_zero(self, db_session):
        progress = recipient_store.get_progress(db_session, "missing")
        assert progress.total == 0
        assert progress.pending == 0


class TestListing:
    """Tests for recipient listing."""

    def test_filter_and_order(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=5, batch_size=2, status=CampaignStatus.RUNNING)
        sent = recipient_store.claim_pending(db_session, campaign.id, 2)
        recipient_store.mark_sent(db_session, [r.id for r in sent], 1)
        failed = recipient_store.claim_pending(db_session, campaign.id, 1)
        recipient_store.mark_failed(db_session, [r.id for r in failed], "err", 2)

        everything, total = recipient_store.list_recipients(db_session, campaign.id)
        assert total == 5
        assert [r.status for r in everything][:3] == [
            RecipientStatus.SENT, RecipientStatus.SENT, RecipientStatus.FAILED
        ]

        pending, pending_total = recipient_store.list_recipients(db_session, campaign.id, status="pending")
        assert pending_total == 2
        assert all(r.status == RecipientStatus.PENDING for r in pending)

        page, _ = recipient_store.list_recipients(db_session, campaign.id, limit=2, offset=4)
        assert len(page) == 1

    def test_pending_preview_follows_claim_order(self, db_session, make_campaign):
        campaign = make_campaign(recipient_count=4, status=CampaignStatus.RUNNING)
        preview = recipient_store.get_pending_recipients(db_session, campaign.id, 2)
        claimed = recipient_store.claim_pending(db_session, campaign.id, 2)
        assert [r.email for r in preview] == [r.email for r in claimed]
