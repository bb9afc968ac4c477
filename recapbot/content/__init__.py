"""Meeting content generation: follow-up emails and social media drafts."""
