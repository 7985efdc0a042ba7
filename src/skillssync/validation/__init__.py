"""Skill package validator."""
