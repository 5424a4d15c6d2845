"""
Learning loop: strategy experiments scored against observed peaks.
"""
