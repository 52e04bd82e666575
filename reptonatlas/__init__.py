"""Sprite atlas extraction from Repton map editor screenshots."""
