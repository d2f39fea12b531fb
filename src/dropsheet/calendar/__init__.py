"""Holiday calendars consulted by business-day arithmetic."""
