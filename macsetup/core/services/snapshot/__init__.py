"""
Snapshot — collect a machine's setup into an archive and restore
the non-Homebrew sections (shell config, sensitive files, apps).
"""
