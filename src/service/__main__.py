from src.service.cli import main

main()
