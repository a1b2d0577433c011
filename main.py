#!/usr/bin/env python3
"""
Main entry point for Twitch Chat.

This script serves as the entry point when running the application directly.
It imports and runs the main function from the twitchchat package.
"""

if __name__ == "__main__":
    from twitchchat import main
    main()
