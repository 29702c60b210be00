# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Domain models."""

from .api_key import ApiKey, IssuedApiKey, KeyStatus, RevocationReason
from .audit import CRITICAL_ACTIONS, AuditAction, AuditEntry, is_critical_action
from .base import BaseModelConfig

__all__ = [
    "BaseModelConfig",
    "ApiKey",
    "IssuedApiKey",
    "KeyStatus",
    "RevocationReason",
    "AuditAction",
    "AuditEntry",
    "CRITICAL_ACTIONS",
    "is_critical_action",
]
