#!/usr/bin/env python3
"""
Linux Lab Package
A simulated Ubuntu host (filesystem, shell and network) for hands-on
Linux and networking lessons
"""

__version__ = '1.0.0'

from .filesystem import VirtualFilesystem, FileNode
from .network import VirtualNetwork
from .shell import ShellInterpreter, CLEAR_SCREEN
from .lessons import Lab, Lesson, Task, Validation
from .database import LabDatabase

__all__ = [
    'VirtualFilesystem',
    'FileNode',
    'VirtualNetwork',
    'ShellInterpreter',
    'CLEAR_SCREEN',
    'Lab',
    'Lesson',
    'Task',
    'Validation',
    'LabDatabase',
]
