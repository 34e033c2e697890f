"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
ETOO - Excel to Octane
A CLI tool for importing manual tests and their step scripts from an Excel sheet into ALM Octane
"""

__version__ = "0.1.0"
