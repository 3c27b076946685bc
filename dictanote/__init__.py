"""
Dictanote - AI-powered dictation with correction and Notion export.

A Python application that records audio, transcribes it, lets you apply
LLM-suggested corrections and exports the transcript to a Notion database.
"""

__version__ = "0.1.0"
__description__ = "AI-powered dictation with correction and Notion export"
