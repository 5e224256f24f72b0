"""
Inference module: junction tree calibration over table factors.
"""

from tablefactor.inference.junction_tree import JunctionTree, build_clique_tree, root_tree

__all__ = ["JunctionTree", "build_clique_tree", "root_tree"]
