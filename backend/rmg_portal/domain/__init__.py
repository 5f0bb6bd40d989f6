"""Domain layer - enums, models and errors"""
