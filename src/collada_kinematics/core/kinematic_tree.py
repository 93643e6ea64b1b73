"""KinematicTree PyTree: the array form of a RobotModel.

This module flattens a validated RobotModel into a stateless, immutable
structure of JAX arrays so that forward kinematics can be jitted and
differentiated.
"""

from typing import Tuple

import jax.numpy as jnp
from flax import struct
from jax import Array

from collada_kinematics.core.robot_model import JointType, RobotModel
from collada_kinematics.transforms import pose as pose_ops

_MOVING = (JointType.REVOLUTE, JointType.CONTINUOUS, JointType.PRISMATIC)


@struct.dataclass
class KinematicTree:
    """Immutable PyTree representation of a robot's kinematic structure.

    Links are stored in breadth-first order from the root, so every parent
    index is smaller than its child's.

    Attributes:
        link_names: Tuple of all link names. Index corresponds to link ID.
                    Marked as a static field for JIT compilation.
        joint_names: Tuple of the moving (revolute, continuous, prismatic)
                     joint names, in link order. Static.
        parent_indices: Array of shape (num_links,); the root parents itself.
        joint_transforms: Array of shape (num_links, 4, 4) holding each
                          joint origin in its parent link frame.
        joint_axes: Array of shape (num_links, 6) of [vx,vy,vz,wx,wy,wz]
                    twists; zero for fixed joints and the root.
        actuated_joint_to_link_idx: Array of shape (num_dof,) mapping each
                                    entry of q to the link it moves.
    """
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    parent_indices: Array
    joint_transforms: Array
    joint_axes: Array
    actuated_joint_to_link_idx: Array

    @property
    def num_dof(self) -> int:
        return len(self.joint_names)

    @classmethod
    def from_robot_model(cls, model: RobotModel) -> "KinematicTree":
        """Flatten a RobotModel whose tree and root are initialized."""
        if model.root is None:
            model.finalize()
        link_names = model.ordered_links()
        link_index = {name: i for i, name in enumerate(link_names)}

        parent_indices = []
        transforms = []
        axes = []
        joint_names = []
        joint_links = []
        for i, link_name in enumerate(link_names):
            joint = model.parent_joint(link_name)
            if joint is None:
                parent_indices.append(i)
                transforms.append(jnp.eye(4))
                axes.append(jnp.zeros(6))
                continue

            parent_indices.append(link_index[joint.parent])
            transforms.append(pose_ops.to_matrix(joint.origin))
            axis = jnp.asarray(joint.axis, dtype=jnp.float64)
            if joint.type in (JointType.REVOLUTE, JointType.CONTINUOUS):
                axes.append(jnp.concatenate([jnp.zeros(3), axis]))
            elif joint.type == JointType.PRISMATIC:
                axes.append(jnp.concatenate([axis, jnp.zeros(3)]))
            else:
                axes.append(jnp.zeros(6))
            if joint.type in _MOVING:
                joint_names.append(joint.name)
                joint_links.append(i)

        return cls(
            link_names=tuple(link_names),
            joint_names=tuple(joint_names),
            parent_indices=jnp.array(parent_indices, dtype=jnp.int32),
            joint_transforms=jnp.stack(transforms),
            joint_axes=jnp.stack(axes),
            actuated_joint_to_link_idx=jnp.array(joint_links, dtype=jnp.int32),
        )
