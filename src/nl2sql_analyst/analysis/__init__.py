"""Progressive analysis pipeline: discovery, planning, execution and insights."""
