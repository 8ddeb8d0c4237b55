from __future__ import annotations

TOPIC_ACCEPTED_EMOJI = "✅"
TOPIC_PROMPT_EMOJI = "⚠️"

BROADCAST_MENTIONS = {
    "everyone": "@everyone",
    "here": "@here",
}

# Number of recent messages scanned for the platform's "pinned a message" notice.
SYSTEM_PIN_SCAN_LIMIT = 5
