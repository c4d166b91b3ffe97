"""Data module for synthetic labelled datasets."""

from .synthetic import (
    generate_blobs,
    BlobGenerator,
    SyntheticDataset,
)

__all__ = [
    "generate_blobs",
    "BlobGenerator",
    "SyntheticDataset",
]
