"""Header rows used by test workbooks."""

from __future__ import annotations

PERSONS_HEADER = ["ФИО", "Почта"]
SESSIONS_HEADER = ["Сетевой код", "Учетная запись", "IP"]
