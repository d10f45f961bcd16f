"""Inbound webhook pipeline: verify, deduplicate, match instances, trigger."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from area_engine.models import ActivationModeType
from area_engine.repositories import ActionInstanceRepository, ActivationModeRepository

from .dedup import DeduplicationService
from .signature import SignatureValidator

logger = logging.getLogger(__name__)


class WebhookStatus(str, Enum):
    """Outcome of processing a webhook."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


class InboundWebhook(BaseModel):
    """A webhook request as handed over by the HTTP adapter."""

    provider: str = Field(..., description="Provider key (github, slack, ...)")
    event_id: str | None = Field(None, description="Provider delivery id")
    action_key: str = Field(..., description="Definition key of the triggered action")
    raw_body: bytes = Field(b"", description="Body exactly as received")
    payload: dict[str, Any] = Field(default_factory=dict, description="Parsed body")
    signature: str | None = None
    timestamp: str | None = None
    secret: str | None = None


class WebhookResult(BaseModel):
    """Summary returned to the adapter."""

    status: WebhookStatus
    provider: str
    event_id: str | None = None
    triggered_instance_ids: list[str] = Field(default_factory=list)
    failed_instance_ids: list[str] = Field(default_factory=list)
    execution_ids: list[str] = Field(default_factory=list)


class WebhookIngestionService:
    """Turns verified, first-seen webhooks into area executions."""

    def __init__(
        self,
        signature_validator: SignatureValidator,
        dedup_service: DeduplicationService,
        instance_repository: ActionInstanceRepository,
        activation_mode_repository: ActivationModeRepository,
        trigger_service,
    ):
        self.validator = signature_validator
        self.dedup = dedup_service
        self.instances = instance_repository
        self.activation_modes = activation_mode_repository
        self.trigger = trigger_service

    def process(self, event: InboundWebhook) -> WebhookResult:
        provider = event.provider.lower()
        log_extra = {"provider": provider, "event_id": event.event_id}

        if not self.validator.validate(
            provider, event.raw_body, event.signature, event.secret, event.timestamp
        ):
            logger.warning(f"Rejected {provider} webhook with invalid signature", extra=log_extra)
            return WebhookResult(
                status=WebhookStatus.REJECTED, provider=provider, event_id=event.event_id
            )

        if self.dedup.check_and_mark(event.event_id, provider):
            return WebhookResult(
                status=WebhookStatus.DUPLICATE, provider=provider, event_id=event.event_id
            )

        result = WebhookResult(
            status=WebhookStatus.ACCEPTED, provider=provider, event_id=event.event_id
        )
        for instance in self.find_webhook_instances(provider, event.action_key):
            try:
                execution = self.trigger.trigger_area_execution(
                    instance, ActivationModeType.WEBHOOK, event.payload
                )
            except Exception as e:
                logger.error(
                    f"Failed to trigger instance {instance.id} from {provider} webhook: {e}",
                    extra={**log_extra, "action_instance_id": instance.id},
                )
                result.failed_instance_ids.append(instance.id)
                continue
            result.triggered_instance_ids.append(instance.id)
            if execution is not None:
                result.execution_ids.append(execution.id)

        logger.info(
            f"Processed {provider} webhook {event.action_key}: "
            f"{len(result.triggered_instance_ids)} triggered, "
            f"{len(result.failed_instance_ids)} failed",
            extra=log_extra,
        )
        return result

    def find_webhook_instances(self, provider: str, action_key: str) -> list:
        """Enabled instances of the provider's action that have an enabled WEBHOOK mode."""
        matches = []
        for instance in self.instances.find_enabled_by_service(provider):
            if instance.definition.key != action_key:
                continue
            mode = self.activation_modes.find_enabled_by_instance_and_type(
                instance.id, ActivationModeType.WEBHOOK
            )
            if mode is None:
                continue
            matches.append(instance)
        return matches
