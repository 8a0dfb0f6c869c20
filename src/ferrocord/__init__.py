"""
Ferrocord - Community Moderation and Tag Bot

Ferrocord is a Discord bot for programming communities. It keeps a
community-maintained knowledge base of tags (short named snippets such as
FAQ answers), relays mod-mail, hands out an opt-in role and cleans up
channels, with every command flowing through one dispatch pipeline.

Core Components:

- **Event Normalizer**: Turns prefix messages, slash commands, component
  clicks and reactions into a uniform ``Invocation``
- **Tag Repository**: Transactional SQLite store for tags and aliases with
  cross-namespace name uniqueness and usage counters
- **Permission Gate**: Pure role, restricted-tag and self-only checks
- **Command Dispatcher**: Static command registry, policy short-circuit,
  bounded execution and fault isolation per invocation
- **Action Sink**: Per-channel ordered, rate-limit aware delivery of every
  outbound Discord call
- **Interactive Console**: Live bot administration interface for status checks
  and graceful restart/shutdown

Usage:
    from ferrocord.main import main
    main()  # Starts the bot with console interface
"""
