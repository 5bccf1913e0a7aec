"""
linkmanager — Link & Placement Manager Core
============================================
Manages named links (custom URLs, contact links, CMS pages), binds them to
template placements addressed by a stable identifier, and keeps an audit
trail of every mutation.  Templates resolve a placement (or a link name) to
a URL through a layered fallback chain that never breaks page rendering.

Package layout::

    linkmanager/
    ├── app.py             # Wiring container (stores, form service, resolver)
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Identifier rules, labels, placeholder URL
    ├── exceptions.py      # Error taxonomy (NotFound, Validation, Storage, ...)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helpers
    │   └── models.py      # Link, Placement, PlacementLink, LogEntry
    ├── services/
    │   ├── link_service.py       # Link Store (CRUD, positions, cascade delete)
    │   ├── placement_service.py  # Placement Store + association table
    │   ├── log_service.py        # Audit Log Store (append, filter, page)
    │   ├── cms_service.py        # CMS URL resolver
    │   ├── link_form.py          # Form/association orchestrator
    │   ├── log_buffer.py         # In-memory system log channel
    │   └── side_effects.py       # Non-fatal side-effect helper
    └── engine/
        ├── snapshot.py    # Per-request placement → URL snapshot
        └── resolver.py    # Strategy chain: snapshot → service → database
"""

__version__ = "0.1.0"
