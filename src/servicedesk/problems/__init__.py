"""
Problems Bounded Context
========================

Problem records, root cause analysis, known errors and the links
between problems and the incidents they explain.
"""
