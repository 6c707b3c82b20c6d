from webbot.app import main

main()
