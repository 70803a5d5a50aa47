"""Domain layers"""
