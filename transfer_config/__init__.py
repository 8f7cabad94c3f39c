"""
transfer_config -- single public entrypoint for the workflow catalog.

Responsibility:
    Provides the ONLY way to obtain the stage catalog at runtime through
    ``get_active_catalog()``.  Returns a ``CompiledCatalog`` -- the sole
    runtime artifact.  YAML loading is internal tooling.

Architecture position:
    Configuration -- sits above ``transfer_kernel`` and below
    ``transfer_services``.  The kernel MUST NEVER import from
    ``transfer_config``; ``bridges`` translates compiled artifacts into
    kernel rows.

Invariants enforced:
    - Load-time validation: the catalog must pass every structural check
      (typed guards, DAG, reachability, acyclic relay) before it is compiled.
    - Deterministic compilation: the same YAML always yields the same
      checksum.

Audit relevance:
    Every successful ``get_active_catalog()`` call emits a
    ``TRANSFER_CATALOG_TRACE`` log entry with the catalog name, version,
    checksum and sizes.
"""

from __future__ import annotations

from pathlib import Path

from transfer_config.compiler import CompiledCatalog, compile_catalog
from transfer_config.loader import load_catalog
from transfer_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalogs" / "plot_transfer.yaml"


def get_active_catalog(path: Path | None = None) -> CompiledCatalog:
    """The ONLY public catalog entrypoint.

    Args:
        path: Override catalog file.  Defaults to the bundled
            ``catalogs/plot_transfer.yaml``.

    Raises:
        FileNotFoundError: If the catalog file does not exist.
        CatalogValidationError: If validation fails.
    """
    source = load_catalog(Path(path) if path is not None else DEFAULT_CATALOG_PATH)
    catalog = compile_catalog(source)

    assert catalog.checksum == source.checksum, (
        f"Checksum drift: compiled={catalog.checksum!r} != source={source.checksum!r}"
    )

    _logger.info(
        "TRANSFER_CATALOG_TRACE",
        extra={
            "trace_type": "TRANSFER_CATALOG_TRACE",
            "catalog_name": catalog.name,
            "catalog_version": catalog.version,
            "checksum": catalog.checksum,
            "stage_count": len(catalog.stages),
            "transition_count": len(catalog.transitions),
            "relay_count": len(catalog.relay),
        },
    )
    return catalog


__all__ = ["CompiledCatalog", "DEFAULT_CATALOG_PATH", "get_active_catalog"]
