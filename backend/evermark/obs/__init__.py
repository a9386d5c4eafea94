"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from evermark.obs import logging as obs_logging
from evermark.obs import middleware
from evermark.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	global _initialised
	if _initialised:
		return
	if settings.obs_enabled:
		obs_logging.configure_logging()
	middleware.install(app, enabled=settings.obs_enabled)
	_initialised = True


__all__ = ["init"]
