from __future__ import annotations

from i18n_sync.entrypoints.cli import main

raise SystemExit(main())
