"""Assembles one consistent FullPFS from every entity collection."""

from pfs_engine.assembler.pfs_assembler import (
    PFSAssemblyError,
    PFSDataFetchers,
    RepositoryFetchers,
    assemble_pfs,
    assemble_pfs_from_data,
    assemble_pfs_summary,
    make_pfs_id,
)

__all__ = [
    "PFSAssemblyError",
    "PFSDataFetchers",
    "RepositoryFetchers",
    "assemble_pfs",
    "assemble_pfs_from_data",
    "assemble_pfs_summary",
    "make_pfs_id",
]
