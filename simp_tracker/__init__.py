"""simp-tracker progression and scoring engine"""
