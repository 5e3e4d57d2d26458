#!/usr/bin/env python3
"""
midi-rcon - Entry point.

Turns MIDI control surface movements into game-server RCON commands.
"""

from midi_rcon.cli import main

if __name__ == "__main__":
    main()
