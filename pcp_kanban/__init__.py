# PCP Kanban: production board client, resilient API access and sector transitions
#
# Components:
#   schema.py      - Data model (Task, Product, Sector, Priority, PendingTransition)
#   errors.py      - Exception taxonomy (ApiError, ApiTimeout, AuthExpired, ConfigError)
#   credentials.py - Credential store (SQLite persistence, JWT expiry checks)
#   api_client.py  - Authenticated API client with single-flight token refresh
#   auth.py        - Login / logout on top of the client and credential store
#   pedidos.py     - Remote order endpoints and record mapping
#   board.py       - In-memory board state, search and stats
#   columns.py     - Column ordering, deadline flags and production summaries
#   transitions.py - Drag/drop sector transition controller
#   audit.py       - JSON-lines audit trail
#   config.py      - YAML configuration loader
#   app.py         - Wiring of the components above from one config
#   cli.py         - Command-line front end
