"""Tests for transactional email rendering and delivery."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import SecretStr

from hiringkit.app.config import Settings
from hiringkit.app.errors import NotificationError
from hiringkit.app.models.common import PlanTier
from hiringkit.app.notifications.email import (
    ApprovalNotification,
    LoggingNotifier,
    OrderConfirmation,
    ResendNotifier,
    get_notifier,
    render_approval_notification,
    render_order_confirmation,
)

API_URL = "https://email.test/emails"


def test_confirmation_with_link() -> None:
    email = render_order_confirmation(
        OrderConfirmation(
            to="buyer@example.com",
            kit_title="Analyst <Kit>",
            plan_tier=PlanTier.standard,
            download_url="https://kits.test/kit/1/success",
        )
    )

    assert email.to == "buyer@example.com"
    assert "Analyst &lt;Kit&gt;" in email.html
    assert 'href="https://kits.test/kit/1/success"' in email.html


def test_confirmation_without_link_mentions_review() -> None:
    email = render_order_confirmation(
        OrderConfirmation(
            to="buyer@example.com",
            kit_title="Analyst Kit",
            plan_tier=PlanTier.premium,
            download_url=None,
        )
    )

    assert "reviewers" in email.html
    assert "href" not in email.html


def test_approval_notice_links_to_kit() -> None:
    email = render_approval_notification(
        ApprovalNotification(
            to="buyer@example.com", kit_title="Analyst Kit", download_url="https://kits.test/k"
        )
    )

    assert email.subject == "Ready to download: Analyst Kit"
    assert 'href="https://kits.test/k"' in email.html


@pytest.mark.asyncio
async def test_resend_posts_rendered_email() -> None:
    response = httpx.Response(200, request=httpx.Request("POST", API_URL), json={"id": "em_1"})
    notifier = ResendNotifier(api_key="re_test", sender="Kits <k@test>", api_url=API_URL)

    with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=response)) as post:
        await notifier.send_approval_notification(
            ApprovalNotification(to="buyer@example.com", kit_title="Kit", download_url="u")
        )

    kwargs = post.call_args.kwargs
    assert post.call_args.args[0] == API_URL
    assert kwargs["headers"] == {"Authorization": "Bearer re_test"}
    assert kwargs["json"]["to"] == ["buyer@example.com"]
    assert kwargs["json"]["from"] == "Kits <k@test>"


@pytest.mark.asyncio
async def test_resend_http_error_becomes_notification_error() -> None:
    response = httpx.Response(422, request=httpx.Request("POST", API_URL))
    notifier = ResendNotifier(api_key="re_test", sender="k@test", api_url=API_URL)

    with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=response)):
        with pytest.raises(NotificationError):
            await notifier.send_order_confirmation(
                OrderConfirmation(
                    to="buyer@example.com",
                    kit_title="Kit",
                    plan_tier=PlanTier.standard,
                    download_url="u",
                )
            )


def test_factory_falls_back_to_logging() -> None:
    assert isinstance(get_notifier(Settings(resend_api_key=None)), LoggingNotifier)
    assert isinstance(
        get_notifier(Settings(resend_api_key=SecretStr("re_test"))), ResendNotifier
    )
