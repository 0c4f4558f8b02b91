#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Database schema for the timer service.

One table, ``kv_storage``, keyed by (namespace, key) and holding JSON text.
The timer collection is a single row under the 'pomodoro' namespace and is
always rewritten whole.
"""

import json
from typing import Any

from sqlalchemy import Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    pass


class KVStorage(Base):
    """A JSON document stored under (namespace, key)."""

    __tablename__ = 'kv_storage'
    __table_args__ = {'comment': 'Namespaced JSON documents'}

    namespace: Mapped[str] = mapped_column(String(100), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)

    # Unix epoch seconds
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    def get_value(self) -> Any:
        """Decoded value; raises json.JSONDecodeError if the text is corrupt."""
        return json.loads(self.value_json)

    def __repr__(self) -> str:
        return f"<KVStorage {self.namespace}/{self.key}>"
