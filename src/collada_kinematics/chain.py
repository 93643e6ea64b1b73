"""Forward kinematics over a flattened kinematic tree.

`forward_kinematics` is jit-friendly and works on a KinematicTree;
`link_poses` is the convenience used by the scene writer, giving
root-relative poses of every link of a RobotModel at the zero configuration.
"""

from typing import Dict, Optional

import jax
import jax.numpy as jnp
from jax import Array

from .core import KinematicTree, RobotModel
from .transforms import Pose, se3
from .transforms import pose as pose_ops


def forward_kinematics(tree: KinematicTree, q: Optional[Array] = None) -> Dict[str, Array]:
    """Compute forward kinematics for all links of the tree.

    Args:
        tree: KinematicTree containing the robot's kinematic structure
        q: Joint positions of shape (num_dof,) for moving joints only;
           zeros when omitted

    Returns:
        Dictionary mapping link names to their 4x4 poses in the root frame
    """
    if q is None:
        q = jnp.zeros(tree.num_dof)
    world_transforms = forward_kinematics_world(tree, q)
    return {name: world_transforms[i] for i, name in enumerate(tree.link_names)}


def forward_kinematics_world(tree: KinematicTree, q: Array) -> Array:
    """FK returning an array of world transforms.

    Args:
        tree: KinematicTree containing the robot's kinematic structure
        q: Joint positions of shape (num_dof,)

    Returns:
        Array of shape (num_links, 4, 4) with poses of all links
    """
    num_links = len(tree.link_names)

    q_full = jnp.zeros(num_links, dtype=jnp.float64)
    q_full = q_full.at[tree.actuated_joint_to_link_idx].set(q)

    world_transforms = jnp.identity(4, dtype=jnp.float64)[None].repeat(num_links, axis=0)
    if num_links == 1:
        return world_transforms

    def scan_body(carry, i):
        """Processes link `i` using its parent's world pose from `carry`."""
        T_world_to_parent = carry[tree.parent_indices[i]]
        T_joint_motion = se3.exp(tree.joint_axes[i] * q_full[i])
        T_parent_to_child = tree.joint_transforms[i] @ T_joint_motion
        carry = carry.at[i].set(T_world_to_parent @ T_parent_to_child)
        return carry, None

    # links are in breadth-first order, so parents are always done first
    final_transforms, _ = jax.lax.scan(scan_body, world_transforms, jnp.arange(1, num_links))
    return final_transforms


def link_poses(model: RobotModel) -> Dict[str, Pose]:
    """Root-relative pose of every link at the zero configuration."""
    tree = KinematicTree.from_robot_model(model)
    return {name: pose_ops.from_matrix(T) for name, T in forward_kinematics(tree).items()}
