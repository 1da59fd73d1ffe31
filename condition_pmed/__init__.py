"""
MEPS-HC Condition-Linked Prescribed Medicines
=============================================

Link the Medical Conditions file to the Prescribed Medicines file through the
condition-event link (CLNK) crosswalk and build a person-level analytic file
for survey-weighted estimation.
"""

__version__ = "0.1.0"
