"""Deployment descriptor generation."""
from pathlib import Path
from typing import Tuple

from ..core.types import NetworkRecord
from .compose import ComposeDocument, ComposeService, build_compose
from .proxy import ProxyDocument, build_proxy


def render(record: NetworkRecord, network_dir: Path) -> Tuple[str, str]:
    """Render (compose document, routing document). Never mutates the record."""
    compose = build_compose(record, Path(network_dir)).render()
    routing = build_proxy(record).render()
    return compose, routing


__all__ = ['render', 'ComposeDocument', 'ComposeService', 'build_compose',
           'ProxyDocument', 'build_proxy']
