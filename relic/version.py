"""Relic Meta information.
   Relic keeps git-friendly encrypted secrets: the JSON structure stays
   readable while every value is encrypted on its own.
"""
__title__ = 'relic'
__description__ = (
   'Git-friendly encrypted secrets artifacts with per-value '
   'authenticated encryption.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Relic Contributors'
__author__ = 'Relic Contributors'
__license__ = 'Apache-2.0'
