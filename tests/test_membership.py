import pytest

from exchange_client import ExchangeError, ExchangeMember
from membership import AddOutcome, add_user, add_users, load_members, member_keys, summarize
from conftest import FakeExchangeClient, log_lines

GROUP = "sec-sales@contoso.com"


def test_member_keys_uses_primary_and_legacy():
    assert member_keys(ExchangeMember("A", "A@X.com", "a@x.onmicrosoft.com")) == {
        "a@x.com", "a@x.onmicrosoft.com",
    }
    assert member_keys(ExchangeMember("B", "b@x.com")) == {"b@x.com"}
    assert member_keys(ExchangeMember("C", "", "")) == set()


def test_load_members(client, log):
    members = load_members(client, log, GROUP)

    assert members == {"alice@contoso.com", "alice@contoso.onmicrosoft.com", "bob@contoso.com"}
    assert client.calls == [("get_members", GROUP)]


def test_load_members_propagates_listing_failure(client, log):
    client.fail_on.add("get_members")
    with pytest.raises(ExchangeError):
        load_members(client, log, GROUP)


@pytest.mark.parametrize("identifier", ["bob@contoso.com", "BOB@Contoso.com", "  Alice@contoso.com "])
def test_existing_member_is_skipped(client, log, identifier):
    members = {"alice@contoso.com", "bob@contoso.com"}

    assert add_user(client, log, identifier, GROUP, members) is AddOutcome.DUPLICATE
    assert client.calls == []
    assert len(log_lines(log, "WARN")) == 1


def test_blank_identifier_is_ignored(client, log):
    assert add_user(client, log, "   ", GROUP, set()) is AddOutcome.IGNORED
    assert client.calls == []
    assert log_lines(log) == []


def test_add_updates_member_set(client, log):
    members = set()

    assert add_user(client, log, " Carol@contoso.com ", GROUP, members) is AddOutcome.ADDED
    assert add_user(client, log, "carol@contoso.com", GROUP, members) is AddOutcome.DUPLICATE

    assert client.added == ["Carol@contoso.com"]
    assert members == {"carol@contoso.com"}
    assert len(log_lines(log, "INFO")) == 1
    assert len(log_lines(log, "WARN")) == 1


def test_simulate_makes_no_calls_and_keeps_set(client, log):
    members = {"bob@contoso.com"}

    outcomes = [
        add_user(client, log, identifier, GROUP, members, simulate=True)
        for identifier in ["carol@contoso.com", "bob@contoso.com", "carol@contoso.com", ""]
    ]

    assert outcomes == [
        AddOutcome.SIMULATED, AddOutcome.DUPLICATE, AddOutcome.SIMULATED, AddOutcome.IGNORED,
    ]
    assert client.calls == []
    assert members == {"bob@contoso.com"}
    assert len(log_lines(log, "SIMULATE")) == 2


def test_failed_add_does_not_stop_batch(log):
    client = FakeExchangeClient(fail_adds=["ghost@contoso.com"])
    members = set()

    results = add_users(
        client, log, ["ghost@contoso.com", "dan@contoso.com"], GROUP, members,
    )

    assert results["failed"] == ["ghost@contoso.com"]
    assert results["added"] == ["dan@contoso.com"]
    assert members == {"dan@contoso.com"}
    errors = log_lines(log, "ERROR")
    assert len(errors) == 1
    assert "Couldn't find object" in errors[0]


def test_add_users_keeps_order_and_dedupes(log):
    client = FakeExchangeClient()
    results = add_users(
        client, log, ["a@x.com", "b@x.com", "b@x.com"], GROUP, set(),
    )

    assert client.added == ["a@x.com", "b@x.com"]
    assert results["added"] == ["a@x.com", "b@x.com"]
    assert results["duplicate"] == ["b@x.com"]


def test_summarize():
    results = {"ignored": [""], "duplicate": ["b"], "simulated": [], "added": ["a", "c"], "failed": []}
    assert summarize(results) == "Summary: 1 duplicate, 2 added"
    assert summarize({o.value: [] for o in AddOutcome}) == "Summary: nothing to do"
