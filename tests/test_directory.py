"""
Tests for tenant and credential lookups, status and disconnect.
"""

from datetime import datetime

import pytest

from slacksync.models import Tenant, Conversation, SlackUser
from slacksync.exceptions import NotFoundError
from slacksync.services.directory import TenantDirectory, LookupStatus

from conftest import make_tenant, TEAM_ID, BOT_TOKEN


@pytest.fixture
def directory(test_session, fake_slack, broadcaster):
    return TenantDirectory(test_session, fake_slack.client, broadcaster)


def test_lookup_by_id_and_team(directory, tenant):
    by_id = directory.get_tenant(tenant.id, require_secret=True)
    by_team = directory.get_by_team_id(TEAM_ID, require_secret=True)

    assert by_id.found and by_id.tenant.id == tenant.id
    assert by_team.found and by_team.tenant.id == tenant.id


def test_missing_tenant_is_a_result_not_an_error(directory):
    assert directory.get_tenant("nope").status == LookupStatus.NOT_FOUND
    assert directory.get_by_team_id("T000").status == LookupStatus.NOT_FOUND


def test_unconfigured_tenant(directory, test_session):
    make_tenant(test_session, "bare", slack_config=None)
    make_tenant(test_session, "no-secret", slack_config={"bot_token": BOT_TOKEN, "team_id": "T2"})

    assert directory.get_tenant("bare").status == LookupStatus.NOT_CONFIGURED
    assert directory.get_tenant("no-secret").status == LookupStatus.FOUND
    assert directory.get_tenant("no-secret", require_secret=True).status == LookupStatus.NOT_CONFIGURED


def test_inactive_tenant_not_found(directory, tenant, test_session):
    tenant.is_active = False
    test_session.commit()

    assert directory.get_tenant(tenant.id).status == LookupStatus.NOT_FOUND


def test_require_connected(directory, test_session):
    make_tenant(test_session, "bare", slack_config=None)

    with pytest.raises(NotFoundError):
        directory.require_connected("nope")
    with pytest.raises(NotFoundError):
        directory.require_connected("bare")


def test_update_slack_config_merges_and_mirrors_team(directory, test_session):
    make_tenant(test_session, "fresh", slack_config=None)

    tenant = directory.update_slack_config("fresh", {
        "bot_token": "xoxb-new",
        "signing_secret": "secret",
        "team_id": "T777",
        "unexpected": "dropped",
    })

    assert tenant.slack_team_id == "T777"
    assert tenant.slack_config == {"bot_token": "xoxb-new", "signing_secret": "secret", "team_id": "T777"}
    assert directory.get_by_team_id("T777").found


def test_status_never_exposes_tokens(directory, tenant):
    status = directory.status(tenant.id)

    assert status["isSlackConnected"] is True
    assert status["slackConfig"] == {"hasToken": True, "teamId": TEAM_ID, "teamName": "Test Team"}
    assert BOT_TOKEN not in str(status)


def test_status_for_unconfigured_tenant(directory, test_session):
    make_tenant(test_session, "bare", slack_config=None)

    status = directory.status("bare")

    assert status["isSlackConnected"] is False
    assert status["slackConfig"] is None


def test_clear_slack_config(directory, tenant, test_session):
    directory.clear_slack_config(tenant)

    reloaded = test_session.query(Tenant).filter_by(id=tenant.id).one()
    assert reloaded.slack_config is None
    assert reloaded.slack_team_id is None
    assert directory.get_tenant(tenant.id).status == LookupStatus.NOT_CONFIGURED


@pytest.mark.asyncio
async def test_disconnect_revokes_and_resets(directory, tenant, fake_slack, test_session, broadcaster):
    test_session.add(Conversation(id="1.0", tenant_id=tenant.id, channel_id="C1", content="x", user_id="U1",
                                  reactions=[], thread_replies=[], slack_timestamp=datetime.utcnow()))
    test_session.add(SlackUser(id=SlackUser.make_id(tenant.id, "U1"), tenant_id=tenant.id, slack_user_id="U1"))
    test_session.commit()
    subscription = await broadcaster.subscribe(tenant.id)

    result = await directory.disconnect(tenant.id)

    assert result == {"appUninstalled": True, "dataCleared": True, "tenantReset": True}
    assert fake_slack.calls_for("auth.revoke")[0][0] == BOT_TOKEN
    assert test_session.query(Conversation).filter_by(tenant_id=tenant.id).count() == 0
    assert test_session.query(SlackUser).filter_by(tenant_id=tenant.id).count() == 0
    assert directory.get_tenant(tenant.id).status == LookupStatus.NOT_CONFIGURED

    subscription.queue.get_nowait()
    assert subscription.queue.get_nowait()["type"] == "app_uninstalled"
    await broadcaster.close()


@pytest.mark.asyncio
async def test_disconnect_resets_even_when_revoke_fails(directory, tenant, fake_slack):
    fake_slack.fail("auth.revoke", "transport")

    result = await directory.disconnect(tenant.id)

    assert result["appUninstalled"] is False
    assert result["tenantReset"] is True
    assert directory.get_tenant(tenant.id).status == LookupStatus.NOT_CONFIGURED


@pytest.mark.asyncio
async def test_disconnect_unknown_tenant(directory):
    with pytest.raises(NotFoundError):
        await directory.disconnect("nope")
