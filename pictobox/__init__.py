"""Pictobox: a personal inventory with icon, generated and uploaded images."""
