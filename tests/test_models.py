import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from raffledraw.db.engine import get_sessionmaker, make_engine
from raffledraw.models import (
    Base,
    Participant,
    Prize,
    Raffle,
    RaffleStatus,
    User,
    Winner,
)


class DBTestCase(unittest.TestCase):
    def setUp(self):
        # In-memory SQLite for isolation
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()

    def test_user_email_normalized_and_found(self):
        with self.Session() as session:
            session.add(User(email="  Alice@Example.COM ", name="Alice"))
            session.commit()

            found = User.get_by_email(session, "ALICE@example.com")
            self.assertIsNotNone(found)
            assert found is not None
            self.assertEqual(found.email, "alice@example.com")

    def test_user_display_name_falls_back(self):
        self.assertEqual(User(email="x@example.com").display_name, "Unknown")
        self.assertEqual(User(email="y@example.com", name="Yuki").display_name, "Yuki")

    def test_duplicate_email_rejected(self):
        with self.Session() as session:
            session.add_all([User(email="a@example.com"), User(email="A@example.com")])
            with self.assertRaises(IntegrityError):
                session.commit()

    def test_raffle_defaults_to_draft(self):
        with self.Session() as session:
            raffle = Raffle(name="Meetup")
            session.add(raffle)
            session.commit()

            refreshed = Raffle.get_by_id(session, raffle.id)
            assert refreshed is not None
            self.assertEqual(refreshed.status, RaffleStatus.DRAFT.value)
            self.assertEqual(len(refreshed.id), 36)

    def test_raffle_rejects_unknown_status(self):
        with self.assertRaises(ValueError):
            Raffle(name="Meetup", status="paused")

    def test_qr_expiry(self):
        now = datetime(2026, 5, 1, 18, 0, tzinfo=timezone.utc)
        open_ended = Raffle(name="Open")
        timed = Raffle(name="Timed", qr_code_expires_at=now + timedelta(minutes=15))

        self.assertFalse(open_ended.is_qr_expired(now))
        self.assertFalse(timed.is_qr_expired(now))
        self.assertTrue(timed.is_qr_expired(now + timedelta(minutes=15)))
        # naive values are read back from SQLite as UTC
        self.assertTrue(timed.is_qr_expired(datetime(2026, 5, 1, 19, 0)))

    def test_prizes_in_draw_order(self):
        with self.Session() as session:
            raffle = Raffle(name="Meetup")
            session.add(raffle)
            session.flush()
            for order, name in ((2, "Third"), (0, "First"), (1, "Second")):
                session.add(Prize(name=name, raffle_id=raffle.id, sort_order=order))
            session.commit()

            names = [p.name for p in Prize.for_raffle(session, raffle.id)]
            self.assertEqual(names, ["First", "Second", "Third"])
            self.assertFalse(any(p.is_awarded for p in Prize.for_raffle(session, raffle.id)))

    def test_one_participation_per_user_and_raffle(self):
        with self.Session() as session:
            user = User(email="alice@example.com")
            raffle = Raffle(name="Meetup", status="active")
            session.add_all([user, raffle])
            session.flush()
            session.add(Participant(raffle_id=raffle.id, user_id=user.id))
            session.flush()

            found = Participant.get_for_user(session, raffle.id, user.id)
            assert found is not None
            self.assertEqual(found.ticket_count, 1)

            session.add(Participant(raffle_id=raffle.id, user_id=user.id))
            with self.assertRaises(IntegrityError):
                session.flush()

    def test_ticket_count_must_be_positive(self):
        with self.Session() as session:
            user = User(email="alice@example.com")
            raffle = Raffle(name="Meetup")
            session.add_all([user, raffle])
            session.flush()
            session.add(Participant(raffle_id=raffle.id, user_id=user.id, ticket_count=0))
            with self.assertRaises(IntegrityError):
                session.flush()

    def test_one_winner_per_prize(self):
        with self.Session() as session:
            alice = User(email="alice@example.com")
            bob = User(email="bob@example.com")
            raffle = Raffle(name="Meetup")
            session.add_all([alice, bob, raffle])
            session.flush()
            prize = Prize(name="Mug", raffle_id=raffle.id)
            session.add(prize)
            session.flush()

            session.add(
                Winner(raffle_id=raffle.id, prize_id=prize.id, user_id=alice.id, tickets_at_win=3)
            )
            session.flush()
            session.add(
                Winner(raffle_id=raffle.id, prize_id=prize.id, user_id=bob.id, tickets_at_win=1)
            )
            with self.assertRaises(IntegrityError):
                session.flush()

    def test_make_engine_enforces_sqlite_foreign_keys(self):
        engine = make_engine("sqlite+pysqlite:///:memory:")
        try:
            Base.metadata.create_all(engine)
            Session = get_sessionmaker(engine)
            with Session() as session:
                session.add(Participant(raffle_id="missing-raffle", user_id="missing-user"))
                with self.assertRaises(IntegrityError):
                    session.commit()
        finally:
            engine.dispose()


if __name__ == "__main__":
    unittest.main()
