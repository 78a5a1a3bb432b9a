"""
dor_merger package

Provides the `merge-tool` and `virtual-merge` CLI entrypoints and the merge
job helpers they drive.
"""

from .cli import merge_tool_main, virtual_merge_main
from .merge import merge_into_primary, virtual_merge

__all__ = ["merge_into_primary", "merge_tool_main", "virtual_merge", "virtual_merge_main"]
