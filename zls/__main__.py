from zls.cli import main

main()
