# Storesearch – Approximate text search for schema-less document stores
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

__version__ = "0.1.0"
