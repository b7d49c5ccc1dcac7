from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker

from raffledraw.auth import AdminAllowlistAuthorizer, Caller
from raffledraw.db.utils import ensure_utc
from raffledraw.draw.selection import seeded_random
from raffledraw.errors import DrawRejection
from raffledraw.models import Base, Participant, Prize, Raffle, User, Winner
from raffledraw.models.id_type import new_id
from raffledraw.realtime import EventBroadcaster, InMemoryBus
from raffledraw.workflows import (
    RaffleStatistics,
    activate_raffle,
    draw_winner,
    get_accumulated_tickets,
    get_eligible_participants,
    get_multi_winner_stats,
    get_participants_with_details,
    get_participation,
    get_raffle_history,
    get_raffle_statistics,
    get_raffle_winners,
    join_raffle,
    regenerate_qr_code,
    update_raffle_status,
)

NOW = datetime(2026, 4, 2, 18, 30, tzinfo=timezone.utc)
ADMIN_EMAIL = "host@example.com"


class WorkflowTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )
        self.authorizer = AdminAllowlistAuthorizer([ADMIN_EMAIL])
        self.admin = Caller(user_id=new_id(), email=ADMIN_EMAIL)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _user(self, session, name: str) -> Caller:
        user = User(email=f"{name.lower()}@example.com", name=name)
        session.add(user)
        session.flush()
        return Caller(user_id=user.id, email=user.email)

    def _raffle(self, session, *, status="draft", expires_at=None, created_at=None) -> Raffle:
        raffle = Raffle(
            name="April Meetup",
            status=status,
            qr_code_expires_at=expires_at,
            created_at=created_at,
        )
        session.add(raffle)
        session.flush()
        return raffle


class TestRaffleLifecycle(WorkflowTestCase):
    def test_activate_sets_qr_expiration(self):
        with self.Session() as session:
            raffle = self._raffle(session)

            result = activate_raffle(
                session, self.admin, raffle.id, 30, authorizer=self.authorizer, now=NOW
            )

            self.assertTrue(result.ok, result.error)
            self.assertEqual(result.data.status, "active")
            self.assertEqual(
                ensure_utc(result.data.qr_code_expires_at), NOW + timedelta(minutes=30)
            )

    def test_activate_twice_is_rejected(self):
        with self.Session() as session:
            raffle = self._raffle(session)
            activate_raffle(session, self.admin, raffle.id, 30, authorizer=self.authorizer)

            again = activate_raffle(
                session, self.admin, raffle.id, 30, authorizer=self.authorizer
            )

            self.assertEqual(again.code, DrawRejection.RAFFLE_STATE)
            self.assertEqual(again.error, "Raffle not found or already activated")

    def test_activate_validates_duration_and_caller(self):
        with self.Session() as session:
            raffle = self._raffle(session)
            guest = self._user(session, "Guest")

            too_short = activate_raffle(
                session, self.admin, raffle.id, 10, authorizer=self.authorizer
            )
            too_long = activate_raffle(
                session, self.admin, raffle.id, 1441, authorizer=self.authorizer
            )
            not_admin = activate_raffle(
                session, guest, raffle.id, 30, authorizer=self.authorizer
            )

            self.assertEqual(too_short.code, DrawRejection.INVALID_INPUT)
            self.assertEqual(too_long.code, DrawRejection.INVALID_INPUT)
            self.assertEqual(not_admin.code, DrawRejection.NOT_AUTHORIZED)
            self.assertEqual(session.get(Raffle, raffle.id).status, "draft")

    def test_regenerate_qr_code_requires_active_raffle(self):
        with self.Session() as session:
            draft = self._raffle(session)
            active = self._raffle(session, status="active", expires_at=NOW)

            rejected = regenerate_qr_code(
                session, self.admin, draft.id, 60, authorizer=self.authorizer, now=NOW
            )
            renewed = regenerate_qr_code(
                session, self.admin, active.id, 60, authorizer=self.authorizer, now=NOW
            )

            self.assertEqual(rejected.code, DrawRejection.RAFFLE_STATE)
            self.assertTrue(renewed.ok, renewed.error)
            self.assertEqual(
                ensure_utc(renewed.data.qr_code_expires_at), NOW + timedelta(minutes=60)
            )

    def test_update_raffle_status(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="active")

            invalid = update_raffle_status(
                session, self.admin, raffle.id, "draft", authorizer=self.authorizer
            )
            drawing = update_raffle_status(
                session, self.admin, raffle.id, "drawing", authorizer=self.authorizer
            )
            missing = update_raffle_status(
                session, self.admin, new_id(), "completed", authorizer=self.authorizer
            )

            self.assertEqual(invalid.code, DrawRejection.INVALID_INPUT)
            self.assertEqual(drawing.data.status, "drawing")
            self.assertEqual(missing.code, DrawRejection.RAFFLE_NOT_FOUND)


class TestParticipation(WorkflowTestCase):
    def test_join_is_idempotent(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="active", expires_at=NOW + timedelta(hours=1))
            alice = self._user(session, "Alice")

            first = join_raffle(session, alice, raffle.id, now=NOW)
            second = join_raffle(session, alice, raffle.id, now=NOW + timedelta(minutes=5))

            self.assertTrue(first.data.is_new_join)
            self.assertEqual(first.data.participant.ticket_count, 1)
            self.assertFalse(second.data.is_new_join)
            self.assertEqual(second.data.participant.id, first.data.participant.id)
            self.assertEqual(session.scalar(select(func.count(Participant.id))), 1)

    def test_join_rejected_when_closed(self):
        with self.Session() as session:
            draft = self._raffle(session)
            expired = self._raffle(session, status="active", expires_at=NOW)
            alice = self._user(session, "Alice")

            not_open = join_raffle(session, alice, draft.id, now=NOW)
            too_late = join_raffle(session, alice, expired.id, now=NOW)

            self.assertEqual(not_open.code, DrawRejection.JOIN_CLOSED)
            self.assertEqual(too_late.code, DrawRejection.JOIN_CLOSED)
            self.assertEqual(too_late.error, "QR code has expired")

    def test_join_requires_authentication(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="active")
            result = join_raffle(session, None, raffle.id)
            self.assertEqual(result.code, DrawRejection.NOT_AUTHENTICATED)

    def test_get_participation(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="active")
            alice = self._user(session, "Alice")
            bob = self._user(session, "Bob")
            join_raffle(session, alice, raffle.id)

            self.assertEqual(get_participation(session, alice, raffle.id).data.user_id, alice.user_id)
            self.assertIsNone(get_participation(session, bob, raffle.id).data)

    def test_accumulated_tickets_across_raffles(self):
        with self.Session() as session:
            alice = self._user(session, "Alice")
            for _ in range(3):
                raffle = self._raffle(session, status="active")
                join_raffle(session, alice, raffle.id)

            result = get_accumulated_tickets(session, alice)

            self.assertEqual(result.data, 3)
            self.assertEqual(
                get_accumulated_tickets(session, None).code, DrawRejection.NOT_AUTHENTICATED
            )


class TestAdminReads(WorkflowTestCase):
    def _drawn_raffle(self):
        """Two prizes, three participants, first prize drawn through the public workflow."""
        with self.Session() as session:
            raffle = self._raffle(session, status="active", created_at=NOW)
            first = Prize(name="Keyboard", raffle=raffle, sort_order=0)
            second = Prize(name="Mug", raffle=raffle, sort_order=1)
            session.add_all([first, second])
            callers = [self._user(session, name) for name in ("Alice", "Bob", "Carol")]
            for caller in callers:
                join_raffle(session, caller, raffle.id)
            session.commit()
            raffle_id, prize_id = raffle.id, first.id

        bus = InMemoryBus()
        result = draw_winner(
            self.Session,
            self.admin,
            raffle_id,
            prize_id,
            broadcaster=EventBroadcaster(bus),
            authorizer=self.authorizer,
            random_source=seeded_random(7),
        )
        self.assertTrue(result.ok, result.error)
        return raffle_id, result.data, bus

    def test_draw_winner_workflow(self):
        raffle_id, drawn, bus = self._drawn_raffle()
        self.assertEqual(drawn.participant_count, 3)
        self.assertEqual(len(bus.history), 3)
        with self.Session() as session:
            self.assertEqual(session.get(Raffle, raffle_id).status, "drawing")

    def test_eligible_participants_excludes_winner(self):
        raffle_id, drawn, _ = self._drawn_raffle()
        with self.Session() as session:
            result = get_eligible_participants(
                session, self.admin, raffle_id, authorizer=self.authorizer
            )
            denied = get_eligible_participants(session, None, raffle_id)

        self.assertEqual(len(result.data), 2)
        self.assertNotIn(drawn.winner.user_id, [p.user_id for p in result.data])
        self.assertEqual(denied.code, DrawRejection.NOT_AUTHENTICATED)

    def test_raffle_winners_in_draw_order(self):
        raffle_id, drawn, _ = self._drawn_raffle()
        with self.Session() as session:
            result = get_raffle_winners(
                session, self.admin, raffle_id, authorizer=self.authorizer
            )

        self.assertEqual(len(result.data), 1)
        detail = result.data[0]
        self.assertEqual(detail.user_id, drawn.winner.user_id)
        self.assertEqual(detail.user_name, drawn.winner.user_name)
        self.assertEqual(detail.prize_name, "Keyboard")
        self.assertEqual(detail.tickets_at_win, 1)
        self.assertEqual(detail.to_json()["ticketsAtWin"], 1)

    def test_raffle_history_counts(self):
        raffle_id, _, _ = self._drawn_raffle()
        with self.Session() as session:
            older = self._raffle(session, created_at=NOW - timedelta(days=30))
            session.commit()

            statements = []

            def _count(conn, cursor, statement, parameters, context, executemany):
                statements.append(statement)

            event.listen(self.engine, "before_cursor_execute", _count)
            try:
                result = get_raffle_history(session, self.admin, authorizer=self.authorizer)
            finally:
                event.remove(self.engine, "before_cursor_execute", _count)

        self.assertEqual([item.id for item in result.data], [raffle_id, older.id])
        newest = result.data[0]
        self.assertEqual(newest.participant_count, 3)
        self.assertEqual(newest.prizes_awarded, 1)
        self.assertEqual(newest.total_prizes, 2)
        self.assertEqual(result.data[1].total_prizes, 0)
        self.assertEqual(len(statements), 3)

    def test_history_requires_admin(self):
        with self.Session() as session:
            guest = self._user(session, "Guest")
            result = get_raffle_history(session, guest, authorizer=self.authorizer)
        self.assertEqual(result.code, DrawRejection.NOT_AUTHORIZED)


class TestAdminStatistics(WorkflowTestCase):
    def _win(self, session, raffle, user_id, won_at):
        prize = Prize(name=f"Prize {won_at:%H%M}", raffle=raffle)
        session.add(prize)
        session.flush()
        session.add(
            Winner(
                raffle_id=raffle.id,
                prize_id=prize.id,
                user_id=user_id,
                tickets_at_win=1,
                won_at=won_at,
            )
        )
        session.flush()

    def test_participants_newest_join_first_with_user_details(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="active")
            alice = User(
                email="alice@example.com",
                name="Alice",
                avatar_url="https://a.example/alice.png",
            )
            anon = User(email="anon@example.com")
            session.add_all([alice, anon])
            session.flush()
            session.add_all(
                [
                    Participant(raffle.id, alice.id, ticket_count=4, joined_at=NOW),
                    Participant(raffle.id, anon.id, joined_at=NOW + timedelta(minutes=5)),
                ]
            )
            session.flush()

            result = get_participants_with_details(
                session, self.admin, raffle.id, authorizer=self.authorizer
            )
            invalid = get_participants_with_details(
                session, self.admin, "nope", authorizer=self.authorizer
            )
            guest = self._user(session, "Guest")
            denied = get_participants_with_details(
                session, guest, raffle.id, authorizer=self.authorizer
            )

        self.assertEqual([p.user_id for p in result.data], [anon.id, alice.id])
        self.assertIsNone(result.data[0].user_name)
        self.assertEqual(result.data[1].user_name, "Alice")
        self.assertEqual(result.data[1].user_avatar_url, "https://a.example/alice.png")
        self.assertEqual(result.data[1].ticket_count, 4)
        self.assertEqual(result.data[1].to_json()["joinedAt"], NOW.isoformat())
        self.assertEqual(invalid.code, DrawRejection.INVALID_IDENTIFIER)
        self.assertEqual(denied.code, DrawRejection.NOT_AUTHORIZED)

    def test_raffle_statistics(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="active")
            other = self._raffle(session, status="active")
            for name, count in (("Alice", 3), ("Bob", 2)):
                caller = self._user(session, name)
                session.add(Participant(raffle.id, caller.user_id, ticket_count=count))
            session.add(Participant(other.id, caller.user_id, ticket_count=9))
            session.flush()

            result = get_raffle_statistics(
                session, self.admin, raffle.id, authorizer=self.authorizer
            )
            empty = get_raffle_statistics(
                session, self.admin, new_id(), authorizer=self.authorizer
            )

        self.assertEqual(result.data, RaffleStatistics(participant_count=2, total_tickets=5))
        self.assertEqual(result.data.to_json(), {"participantCount": 2, "totalTickets": 5})
        self.assertEqual(empty.data, RaffleStatistics(participant_count=0, total_tickets=0))

    def test_multi_winner_stats_counts_across_raffles(self):
        with self.Session() as session:
            march = self._raffle(session, status="completed")
            april = self._raffle(session, status="drawing")
            alice = self._user(session, "Alice")
            bob = self._user(session, "Bob")
            carol = self._user(session, "Carol")
            self._win(session, march, alice.user_id, NOW - timedelta(days=30))
            self._win(session, april, alice.user_id, NOW)
            self._win(session, march, bob.user_id, NOW - timedelta(days=30, hours=1))
            self._win(session, april, bob.user_id, NOW - timedelta(hours=1))
            self._win(session, april, bob.user_id, NOW - timedelta(hours=2))
            self._win(session, april, carol.user_id, NOW + timedelta(hours=1))
            session.commit()

            statements = []

            def _count(conn, cursor, statement, parameters, context, executemany):
                statements.append(statement)

            event.listen(self.engine, "before_cursor_execute", _count)
            try:
                result = get_multi_winner_stats(
                    session, self.admin, authorizer=self.authorizer
                )
            finally:
                event.remove(self.engine, "before_cursor_execute", _count)
            denied = get_multi_winner_stats(session, alice, authorizer=self.authorizer)

        self.assertEqual([s.user_id for s in result.data], [bob.user_id, alice.user_id])
        self.assertEqual([s.win_count for s in result.data], [3, 2])
        self.assertEqual(result.data[0].user_name, "Bob")
        self.assertEqual(result.data[0].last_win_at, NOW - timedelta(hours=1))
        self.assertEqual(result.data[1].to_json()["lastWinAt"], NOW.isoformat())
        self.assertEqual(len(statements), 1)
        self.assertEqual(denied.code, DrawRejection.NOT_AUTHORIZED)

    def test_no_repeat_winners(self):
        with self.Session() as session:
            raffle = self._raffle(session, status="drawing")
            alice = self._user(session, "Alice")
            self._win(session, raffle, alice.user_id, NOW)

            result = get_multi_winner_stats(session, self.admin, authorizer=self.authorizer)

        self.assertTrue(result.ok)
        self.assertEqual(result.data, [])


if __name__ == "__main__":
    unittest.main()
