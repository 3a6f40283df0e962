"""
Clinic Analytics

Read-only analytics service computing dashboard reports from the clinic's
operational store.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

__version__ = "1.0.0"
