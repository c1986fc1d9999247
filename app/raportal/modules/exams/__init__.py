"""
Exams module.

- Superadmins author exams with multiple-choice questions
- Ambassadors start a timed attempt and submit answers once
- Submissions are graded immediately into an unpublished result
- Results become visible to their owner only after publication
"""
