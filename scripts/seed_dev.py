from datetime import datetime, timedelta, timezone

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


def main() -> None:
    """Seed the development database with an open raffle and some history."""
    engine = make_engine()

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        organizer = User(email="organizer@example.com", name="Organizer")
        alice = User(email="alice@example.com", name="Alice")
        bob = User(email="bob@example.com", name="Bob")
        carol = User(email="carol@example.com", name="Carol")
        session.add_all([organizer, alice, bob, carol])
        session.flush()

        # Last month's meetup: Bob won, so his earlier tickets no longer count.
        past = Raffle(
            name="September Meetup",
            status=RaffleStatus.COMPLETED.value,
            created_by=organizer.id,
            created_at=now - timedelta(days=30),
        )
        past_prize = Prize(
            name="Mechanical Keyboard",
            raffle=past,
            sort_order=0,
            awarded_to=bob.id,
            awarded_at=now - timedelta(days=30, hours=-2),
        )
        session.add_all([past, past_prize])
        session.flush()
        for user in (alice, bob, carol):
            session.add(
                Participant(
                    raffle_id=past.id,
                    user_id=user.id,
                    joined_at=now - timedelta(days=30),
                )
            )
        session.add(
            Winner(
                raffle_id=past.id,
                prize_id=past_prize.id,
                user_id=bob.id,
                tickets_at_win=1,
                won_at=past_prize.awarded_at,
            )
        )

        # Tonight's raffle, open for joining for two hours.
        tonight = Raffle(
            name="October Meetup",
            status=RaffleStatus.ACTIVE.value,
            qr_code_expires_at=now + timedelta(hours=2),
            created_by=organizer.id,
            created_at=now,
        )
        session.add(tonight)
        session.flush()
        session.add_all(
            [
                Prize(name="Conference Ticket", raffle=tonight, sort_order=0),
                Prize(name="Python Book", raffle=tonight, sort_order=1),
                Prize(name="Sticker Pack", raffle=tonight, sort_order=2),
            ]
        )
        for user in (alice, bob, carol):
            session.add(Participant(raffle_id=tonight.id, user_id=user.id, joined_at=now))

    print("Seeded development database with sample raffles.")


if __name__ == "__main__":
    main()
