"""gridware - relocatable software depot manager for HPC clusters"""

__version__ = "1.0.0"
