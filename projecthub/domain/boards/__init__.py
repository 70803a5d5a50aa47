"""Boards domain - project board creation, administration and collaboration"""
