"""
Shared constants for the AgentFlow framework.

Centralizes values that are needed by both the agent selector and the
workflow engine to avoid circular imports and duplication.
"""

from typing import Tuple

# ── Agent priorities ──

# Lower number = higher precedence. Agents without a priority sort last.
DEFAULT_PRIORITY = 999

# ── Selector shortcuts ──

CREATION_AGENT_NAME = "Code Analyzer"
FALLBACK_AGENT_NAME = "General Assistant"

# Terms that signal the user wants something created. When present the
# creation specialist is tried before the priority scan.
CREATION_KEYWORDS: Tuple[str, ...] = (
    "criar", "create", "crie", "novo", "new", "escrever", "write",
)

FILE_KEYWORDS: Tuple[str, ...] = (
    "file", "arquivo", "folder", "pasta", "directory", "diretório", "read", "ler",
)
DATA_KEYWORDS: Tuple[str, ...] = (
    "data", "dados", "json", "csv", "database", "banco",
)
DOMAIN_KEYWORDS: Tuple[str, ...] = FILE_KEYWORDS + DATA_KEYWORDS

# ── Agent extensions ──

MAX_EXTENSION_KEYS = 32
EXTENSION_GROUP_ID = "group_id"
EXTENSION_GROUP_NAME = "group_name"

# ── Template variables ──

VAR_INPUT_USER = "input_user"
VAR_AGENT_RESPONSE = "agent_response"

# ── Workflow engine ──

# Step budget for a single workflow run (loop guard).
MAX_EXECUTIONS = 100

# Default iteration cap for while nodes.
MAX_WHILE_ITERATIONS = 100

# condition_id value that marks the fallback branch of an if-else node.
ELSE_BRANCH = "else"
