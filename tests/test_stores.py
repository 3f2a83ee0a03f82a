from datetime import datetime, timedelta, timezone

from conftest import count_report_messages, insert_subscription
from src.modules.report_sync.models import InvalidTagIdError, ReportMessage


async def test_subscriptions_load_in_store_order_with_parsed_tags(db, subscriptions):
    await insert_subscription(db, "G1", "C1", ["5", "7"])
    await insert_subscription(db, "G2", "C9", [], True)
    await insert_subscription(db, "G1", "C2", ["3"], True)

    all_subs = (await subscriptions.get_all_subscriptions()).subscriptions
    assert [(s.guild_id, s.channel_id) for s in all_subs] == [("G1", "C1"), ("G2", "C9"), ("G1", "C2")]
    assert all_subs[0].tags == (5, 7)
    assert all_subs[1].tags == ()
    assert all_subs[1].on_users_in_server is True

    guild_subs = (await subscriptions.get_subscriptions_for_guild("G1")).subscriptions
    assert [s.channel_id for s in guild_subs] == ["C1", "C2"]
    missing = await subscriptions.get_subscriptions_for_guild("missing")
    assert missing.subscriptions == []
    assert missing.errors == []


async def test_invalid_tag_id_skips_only_that_subscription(db, subscriptions):
    await insert_subscription(db, "G1", "C1", ["5", "spam"])
    await insert_subscription(db, "G1", "C2", ["5"])

    loaded = await subscriptions.get_all_subscriptions()

    assert [s.channel_id for s in loaded.subscriptions] == ["C2"]
    assert len(loaded.errors) == 1
    assert isinstance(loaded.errors[0], InvalidTagIdError)
    assert loaded.errors[0].value == "spam"

    guild_loaded = await subscriptions.get_subscriptions_for_guild("G1")
    assert [s.channel_id for s in guild_loaded.subscriptions] == ["C2"]
    assert len(guild_loaded.errors) == 1


async def test_report_message_upsert_keeps_single_row_and_insert_date(db, report_messages):
    inserted = datetime(2024, 1, 1, tzinfo=timezone.utc)
    report_message = ReportMessage(
        report_id=42, guild_id="G1", channel_id="C1", message_id="1000",
        insert_date=inserted, update_date=inserted,
    )
    await report_messages.save(report_message)

    report_message.message_id = "2000"
    report_message.deleted = True
    report_message.update_date = inserted + timedelta(hours=1)
    report_message.insert_date = inserted + timedelta(days=5)
    await report_messages.save(report_message)

    stored = await report_messages.find(42, "G1", "C1")
    assert stored.message_id == "2000"
    assert stored.deleted is True
    assert stored.insert_date == inserted
    assert stored.update_date == inserted + timedelta(hours=1)
    assert await count_report_messages(db, 42) == 1


async def test_report_message_key_includes_channel(report_messages):
    await report_messages.save(ReportMessage(report_id=1, guild_id="G1", channel_id="C1", message_id="1"))
    await report_messages.save(ReportMessage(report_id=1, guild_id="G1", channel_id="C2", message_id="2"))

    assert (await report_messages.find(1, "G1", "C1")).message_id == "1"
    assert (await report_messages.find(1, "G1", "C2")).message_id == "2"
    assert await report_messages.find(1, "G2", "C1") is None
