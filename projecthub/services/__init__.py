"""Clients for external services (sprint planner, Trello, GitHub)"""
