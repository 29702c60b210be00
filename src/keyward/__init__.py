# Keyward - API Key Lifecycle & Authorization Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Keyward - API key lifecycle, scope authorization and admin audit trail."""

__version__ = "0.1.0"

__all__ = ["__version__"]
