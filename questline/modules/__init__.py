"""Domain services: quests, streaks and rewards."""
