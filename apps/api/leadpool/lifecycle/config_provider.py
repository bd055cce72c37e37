"""System configuration documents and the auto-transfer policy read from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from leadpool.lifecycle.errors import NotFoundError, ValidationError
from leadpool.lifecycle.models import SystemConfig, utcnow
from leadpool.lifecycle.repositories import parse_id
from leadpool.lifecycle.roles import Operator


logger = logging.getLogger("leadpool.lifecycle")

AUTO_TRANSFER_CONFIG_TYPE = "customer_auto_transfer"


@dataclass(frozen=True)
class AutoTransferConfig:
    config_id: str
    target_sales_id: str
    target_sales_name: str
    days_without_progress: int


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def parse_auto_transfer_value(value: Any, *, config_id: str = "") -> AutoTransferConfig:
    if not isinstance(value, dict):
        raise ValidationError("auto transfer config value must be an object")
    target_id = str(value.get("targetSalesId") or "").strip()
    target_name = str(value.get("targetSalesName") or "").strip()
    days = _as_int(value.get("daysWithoutProgress"))
    problems = []
    try:
        target_id = str(parse_id(target_id, "target sales"))
    except ValidationError:
        problems.append("targetSalesId")
    if not target_name:
        problems.append("targetSalesName")
    if days is None or days <= 0:
        problems.append("daysWithoutProgress")
    if problems:
        raise ValidationError("invalid auto transfer config", details={"fields": problems})
    return AutoTransferConfig(
        config_id=config_id,
        target_sales_id=target_id,
        target_sales_name=target_name,
        days_without_progress=days,
    )


class ConfigProvider:
    """Reads the active auto-transfer policy; nothing is cached between calls."""

    def load_auto_transfer(self, session: Session) -> AutoTransferConfig:
        config = session.scalar(
            select(SystemConfig)
            .where(and_(SystemConfig.config_type == AUTO_TRANSFER_CONFIG_TYPE, SystemConfig.is_enabled.is_(True)))
            .order_by(SystemConfig.updated_at.desc())
            .limit(1)
        )
        if config is None:
            raise NotFoundError("no enabled auto transfer config")
        return parse_auto_transfer_value(config.config_value, config_id=str(config.id))


class SystemConfigService:
    def list_configs(self, session: Session, *, config_type: str | None = None, is_enabled: bool | None = None) -> list[SystemConfig]:
        stmt = select(SystemConfig)
        if config_type:
            stmt = stmt.where(SystemConfig.config_type == config_type)
        if is_enabled is not None:
            stmt = stmt.where(SystemConfig.is_enabled.is_(is_enabled))
        return list(session.scalars(stmt.order_by(SystemConfig.created_at.desc())).all())

    def get(self, session: Session, config_id: str) -> SystemConfig:
        config = session.get(SystemConfig, parse_id(config_id, "config"))
        if config is None:
            raise NotFoundError("config not found")
        return config

    def create(
        self,
        session: Session,
        operator: Operator,
        *,
        config_type: str,
        config_key: str,
        config_value: Any,
        description: str | None = None,
        is_enabled: bool | None = None,
    ) -> SystemConfig:
        if not config_type or not config_key or config_value in (None, ""):
            raise ValidationError("config_type, config_key and config_value are required")
        if config_type == AUTO_TRANSFER_CONFIG_TYPE:
            parse_auto_transfer_value(config_value)
        existing = session.scalar(
            select(SystemConfig.id).where(
                and_(SystemConfig.config_type == config_type, SystemConfig.config_key == config_key)
            )
        )
        if existing is not None:
            raise ValidationError("config key already exists for this type")

        now = utcnow()
        config = SystemConfig(
            config_type=config_type,
            config_key=config_key,
            config_value=config_value,
            description=description,
            is_enabled=True if is_enabled is None else is_enabled,
            creator_id=operator.id,
            creator_name=operator.name,
            created_at=now,
            updated_at=now,
        )
        session.add(config)
        session.commit()
        session.refresh(config)
        logger.info("system_config.created", extra={"config_id": str(config.id), "operator_id": operator.id})
        return config

    def update(
        self,
        session: Session,
        operator: Operator,
        config_id: str,
        *,
        config_value: Any = None,
        description: str | None = None,
        is_enabled: bool | None = None,
    ) -> SystemConfig:
        config = self.get(session, config_id)
        if config_value not in (None, ""):
            if config.config_type == AUTO_TRANSFER_CONFIG_TYPE:
                parse_auto_transfer_value(config_value)
            config.config_value = config_value
        if description:
            config.description = description
        if is_enabled is not None:
            config.is_enabled = is_enabled
        self._touch(config, operator)
        session.commit()
        session.refresh(config)
        logger.info("system_config.updated", extra={"config_id": str(config.id), "operator_id": operator.id})
        return config

    def toggle(self, session: Session, operator: Operator, config_id: str) -> SystemConfig:
        config = self.get(session, config_id)
        config.is_enabled = not config.is_enabled
        self._touch(config, operator)
        session.commit()
        session.refresh(config)
        return config

    def delete(self, session: Session, config_id: str) -> None:
        config = self.get(session, config_id)
        session.delete(config)
        session.commit()

    @staticmethod
    def _touch(config: SystemConfig, operator: Operator) -> None:
        config.updater_id = operator.id
        config.updater_name = operator.name
        config.updated_at = utcnow()
